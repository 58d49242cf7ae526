"""Calendar domain - Appointment projection for provider and client views"""
