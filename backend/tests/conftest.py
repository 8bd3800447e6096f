"""
Pytest 配置和共享 fixtures
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest
from datetime import timedelta
from decimal import Decimal
from typing import Dict, List, Optional
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

from app.database import Base, get_db, enable_sqlite_foreign_keys
from app.models import ontology  # noqa
from app.models.ontology import (
    Booking, BookingRoom, BookingStatus, Consent, Customer, Employee, EmployeeRole,
    AccountStatus, Room, RoomStatus, RoomType, utcnow
)
from app.security.auth import get_password_hash, create_access_token
from app.services.notification_service import CheckinNotifier, get_checkin_notifier
from core.notification.channel import INotificationChannel, NotificationError
from app.main import app


class RecordingChannel(INotificationChannel):
    """记录发送内容的通知渠道；fail=True 时模拟 SMTP 失败"""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: List[Dict] = []

    def send(self, recipient: str, subject: str, content: str, extra: Optional[Dict] = None) -> None:
        if self.fail:
            raise NotificationError("SMTP connection refused")
        self.sent.append({
            "recipient": recipient,
            "subject": subject,
            "content": content,
            "html": (extra or {}).get("html", ""),
        })

    def get_channel_type(self) -> str:
        return "recording"


@pytest.fixture(scope="function")
def db_engine():
    """创建内存数据库引擎"""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    enable_sqlite_foreign_keys(engine)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(db_engine):
    """创建数据库会话"""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = SessionLocal()
    yield session
    session.close()


# ============== 通知相关 Fixtures ==============

@pytest.fixture
def outbox():
    """记录发出的入住邮件"""
    return RecordingChannel()


@pytest.fixture
def notifier(outbox):
    return CheckinNotifier(channel=outbox, from_name="Front Desk")


@pytest.fixture
def failing_notifier():
    return CheckinNotifier(channel=RecordingChannel(fail=True), from_name="Front Desk")


@pytest.fixture(scope="function")
def client(db_session, notifier):
    """创建测试客户端"""
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_checkin_notifier] = lambda: notifier
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


# ============== 认证相关 Fixtures ==============

def _employee(db, username, name, role, status=AccountStatus.ACTIVE):
    employee = Employee(
        username=username,
        password_hash=get_password_hash("123456"),
        name=name,
        email=f"{username}@hotel.example.com",
        role=role,
        status=status,
    )
    db.add(employee)
    db.commit()
    db.refresh(employee)
    return employee


@pytest.fixture
def manager(db_session):
    return _employee(db_session, "manager", "经理", EmployeeRole.MANAGER)


@pytest.fixture
def receptionist(db_session):
    return _employee(db_session, "front1", "前台小王", EmployeeRole.RECEPTIONIST)


@pytest.fixture
def manager_token(manager):
    return create_access_token(manager.id, manager.role)


@pytest.fixture
def receptionist_token(receptionist):
    return create_access_token(receptionist.id, receptionist.role)


@pytest.fixture
def manager_auth_headers(manager_token):
    """返回经理认证的请求头"""
    return {"Authorization": f"Bearer {manager_token}"}


@pytest.fixture
def receptionist_auth_headers(receptionist_token):
    """返回前台认证的请求头"""
    return {"Authorization": f"Bearer {receptionist_token}"}


@pytest.fixture
def auth_headers(receptionist_auth_headers):
    return receptionist_auth_headers


# ============== 实体相关 Fixtures ==============

@pytest.fixture
def sample_room_type(db_session):
    """创建测试房型"""
    room_type = RoomType(
        type_name="Deluxe",
        description="Deluxe King",
        base_price=Decimal("180.00"),
        max_occupancy=2
    )
    db_session.add(room_type)
    db_session.commit()
    db_session.refresh(room_type)
    return room_type


@pytest.fixture
def sample_rooms(db_session, sample_room_type):
    """创建两间房：101 带 room_code，102 只有房型"""
    rooms = [
        Room(room_number="101", room_code="A-101", type="Deluxe King", floor="1",
             room_type_id=sample_room_type.id, status=RoomStatus.AVAILABLE.value),
        Room(room_number="102", floor="1",
             room_type_id=sample_room_type.id, status=RoomStatus.AVAILABLE.value),
    ]
    db_session.add_all(rooms)
    db_session.commit()
    for room in rooms:
        db_session.refresh(room)
    return rooms


@pytest.fixture
def sample_customer(db_session):
    customer = Customer(full_name="Jane Smith", email="jane.smith@example.com", phone="+15550100")
    db_session.add(customer)
    db_session.commit()
    db_session.refresh(customer)
    return customer


def make_booking(db, customer, rooms, reference_code="BK20261020ABC123",
                 status=BookingStatus.CONFIRMED.value):
    """直接写入预订与房间分配"""
    check_in = utcnow().replace(hour=14, minute=0, second=0, microsecond=0) + timedelta(days=1)
    check_out = check_in + timedelta(days=3)
    booking = Booking(
        reference_code=reference_code,
        customer_id=customer.id if customer else None,
        status=status,
        check_in=check_in,
        check_out=check_out,
        check_in_date=check_in.date(),
        check_out_date=check_out.date(),
        nights=3,
        adults=2,
        children=0,
        number_of_guests=2,
        accompanying_guests=[{"fullName": "John Smith", "type": "Adult"}],
    )
    db.add(booking)
    db.flush()
    for room in rooms:
        db.add(BookingRoom(booking_id=booking.id, room_id=room.id, nights=3,
                           status=RoomStatus.RESERVED.value))
        room.status = RoomStatus.RESERVED.value
    db.commit()
    db.refresh(booking)
    return booking


@pytest.fixture
def sample_booking(db_session, sample_customer, sample_rooms):
    """两间房、客户有邮箱的已确认预订"""
    return make_booking(db_session, sample_customer, sample_rooms)


@pytest.fixture
def sample_consent(db_session):
    consent = Consent(slug="privacy-policy", title="Privacy Policy", version="1.0",
                      effective_from=utcnow())
    db_session.add(consent)
    db_session.commit()
    db_session.refresh(consent)
    return consent


@pytest.fixture
def house_rules_consent(db_session):
    consent = Consent(slug="house-rules", title="House Rules", version="1.0",
                      effective_from=utcnow())
    db_session.add(consent)
    db_session.commit()
    db_session.refresh(consent)
    return consent


@pytest.fixture
def booking_factory(db_session):
    """按需创建预订：booking_factory(customer, rooms, reference_code=..., status=...)"""
    def _make(customer, rooms, **kwargs):
        return make_booking(db_session, customer, rooms, **kwargs)
    return _make


@pytest.fixture
def room_factory(db_session, sample_room_type):
    def _make(number):
        room = Room(room_number=number, floor=number[0], room_type_id=sample_room_type.id,
                    status=RoomStatus.AVAILABLE.value)
        db_session.add(room)
        db_session.commit()
        db_session.refresh(room)
        return room
    return _make
