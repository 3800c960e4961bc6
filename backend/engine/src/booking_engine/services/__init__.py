"""Booking engine services.

Services receive their collaborators through constructor arguments; the
``get_*`` helpers in each module return process-wide default instances.
"""
