# StormDesk Services
