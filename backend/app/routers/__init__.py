# API Routers
from app.routers import auth, bookings, checkin, consents, employees

__all__ = ['auth', 'bookings', 'checkin', 'consents', 'employees']
