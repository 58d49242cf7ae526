"""
Scheduling domain - Availability, slot generation and conflict detection

- availability.py: weekly hours, date overrides and time off resolved per date
- slots.py: candidate start times (advisory)
- conflicts.py: half-open overlap test and the atomic reserve-and-insert
- service.py: availability management and provider-driven status transitions
"""
