# Ontology Models
from app.models.ontology import (
    Customer, RoomType, Room, Booking, BookingRoom, BookingInfo,
    Guest, Consent, ConsentLog, Employee
)

__all__ = [
    'Customer', 'RoomType', 'Room', 'Booking', 'BookingRoom', 'BookingInfo',
    'Guest', 'Consent', 'ConsentLog', 'Employee'
]
