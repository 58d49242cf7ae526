"""Domain packages: catalog, scheduling, billing, booking, calendar"""
