"""Booking domain - Booking wizard state machine, commit and manual entry"""
