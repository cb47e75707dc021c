"""
slotbook - publish free/busy availability from iCalendar feeds and turn
slot requests into confirmed bookings.
"""

__version__ = "0.1.0"
