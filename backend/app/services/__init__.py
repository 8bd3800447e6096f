# Business Services
from app.services.booking_service import BookingService
from app.services.checkin_session_service import CheckinSessionService
from app.services.checkin_service import CheckInService
from app.services.checkout_service import CheckOutService
from app.services.consent_service import ConsentService
from app.services.employee_service import EmployeeService

__all__ = [
    'BookingService', 'CheckinSessionService', 'CheckInService',
    'CheckOutService', 'ConsentService', 'EmployeeService'
]
