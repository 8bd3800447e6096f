"""
Pydantic 模式定义
用于 API 请求/响应验证
"""
from datetime import datetime, date
from decimal import Decimal
from typing import Optional, List, Union, Any, Dict
from pydantic import BaseModel, Field, field_validator, ConfigDict
from app.models.ontology import EmployeeRole, AccountStatus


# ============== 客户 / 房间 Schemas ==============

class CustomerResponse(BaseModel):
    id: int
    full_name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)


class RoomResponse(BaseModel):
    id: int
    room_number: str
    room_code: Optional[str] = None
    type: Optional[str] = None
    status: Optional[str] = None
    floor: Optional[str] = None
    price: Optional[Decimal] = None
    model_config = ConfigDict(from_attributes=True)


# ============== 预订 Schemas ==============

class BookingRoomItem(BaseModel):
    room_id: int
    nights: Optional[int] = None
    hours: Optional[int] = None


class BookingCreate(BaseModel):
    """创建预订：房间可通过 room_id / room_ids / rooms 任一方式提供"""
    customer_id: int
    check_in: str
    check_out: str
    room_id: Optional[int] = None
    room_ids: List[int] = Field(default_factory=list)
    rooms: List[BookingRoomItem] = Field(default_factory=list)
    adults: int = 1
    children: int = 0
    guest_list: List[Dict[str, Any]] = Field(default_factory=list)
    send_email: bool = False

    def all_room_ids(self) -> List[int]:
        """合并并去重房间 ID，保持顺序"""
        merged = list(self.room_ids)
        merged.extend(item.room_id for item in self.rooms)
        if self.room_id is not None:
            merged.append(self.room_id)
        seen = set()
        result = []
        for rid in merged:
            if rid not in seen:
                seen.add(rid)
                result.append(rid)
        return result


class BookingRoomResponse(BaseModel):
    id: int
    room_id: int
    nights: Optional[int] = 0
    hours: Optional[int] = None
    status: Optional[str] = None
    room: Optional[RoomResponse] = None
    model_config = ConfigDict(from_attributes=True)


class BookingResponse(BaseModel):
    id: int
    reference_code: Optional[str] = None
    customer_id: Optional[int] = None
    customer: Optional[CustomerResponse] = None
    status: str
    check_in: Optional[datetime] = None
    check_out: Optional[datetime] = None
    check_in_date: Optional[date] = None
    check_out_date: Optional[date] = None
    nights: Optional[int] = 0
    number_of_guests: Optional[int] = 0
    adults: Optional[int] = 1
    children: Optional[int] = 0
    accompanying_guests: Optional[List[Dict[str, Any]]] = None
    checkin_completed: bool = False
    checked_in_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    rooms: List[BookingRoomResponse] = Field(default_factory=list)
    model_config = ConfigDict(from_attributes=True)


# ============== 客人 Schemas ==============

class GuestInput(BaseModel):
    """入住时客人填写的信息（兼容 camelCase 与 snake_case）"""
    full_name: str = Field(..., min_length=1, max_length=150, alias="fullName")
    is_main_guest: bool = Field(False, alias="isMainGuest")
    date_of_birth: Optional[date] = Field(None, alias="dateOfBirth")
    gender: Optional[str] = None
    nationality: Optional[str] = None
    current_address: Optional[str] = Field(None, alias="currentAddress")
    id_type: Optional[str] = Field(None, alias="idType")
    id_number: Optional[str] = Field(None, alias="idNumber")
    id_issued_country: Optional[str] = Field(None, alias="idIssuedCountry")
    face_image_path: Optional[str] = Field(None, alias="faceImagePath")
    document_image_path: Optional[str] = Field(None, alias="documentImagePath")
    email: Optional[str] = None
    model_config = ConfigDict(populate_by_name=True)

    @field_validator('date_of_birth', mode='before')
    @classmethod
    def parse_date_of_birth(cls, v):
        # 前端可能传 ISO 时间戳或空字符串
        if v in (None, ""):
            return None
        if isinstance(v, str) and "T" in v:
            return v.split("T", 1)[0]
        return v


class GuestResponse(BaseModel):
    id: int
    booking_id: Optional[int] = None
    full_name: str
    is_main_guest: bool = False
    date_of_birth: Optional[date] = None
    gender: Optional[str] = None
    nationality: Optional[str] = None
    id_type: Optional[str] = None
    id_number: Optional[str] = None
    id_issued_country: Optional[str] = None
    email: Optional[str] = None
    created_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


# ============== 入住流程 Schemas ==============

class CheckinInitiateRequest(BaseModel):
    booking_id: int = Field(..., alias="bookingId")
    model_config = ConfigDict(populate_by_name=True)


class CheckinValidateRequest(BaseModel):
    checkin_code: str = Field(..., alias="checkinCode")
    query: str = ""
    model_config = ConfigDict(populate_by_name=True)


class ConsentRef(BaseModel):
    id: int


class CheckinFinalizeRequest(BaseModel):
    token: str = Field(..., min_length=1)
    guests: List[GuestInput] = Field(default_factory=list)
    consents: List[ConsentRef] = Field(default_factory=list)

    @field_validator('consents', mode='before')
    @classmethod
    def accept_bare_ids(cls, v):
        if v is None:
            return []
        return [{"id": item} if isinstance(item, int) else item for item in v]

    def consent_ids(self) -> List[int]:
        return [c.id for c in self.consents]


class CheckinResendRequest(BaseModel):
    booking_info_id: Optional[int] = Field(None, alias="bookingInfoId")
    checkin_code: Optional[str] = Field(None, alias="checkinCode")
    model_config = ConfigDict(populate_by_name=True)


class BookingInfoResponse(BaseModel):
    """入住会话（不返回 token）"""
    id: int
    booking_id: int
    checkin_code: str
    status: str
    email_status: Optional[str] = None
    email_error: Optional[str] = None
    expires_at: Optional[datetime] = None
    code_expires_at: Optional[datetime] = None
    guest_email: Optional[str] = None
    guest_last_name: Optional[str] = None
    created_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


# ============== 同意书 Schemas ==============

class ConsentCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    slug: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    version: Optional[str] = None


class ConsentResponse(BaseModel):
    id: int
    slug: str
    title: str
    description: Optional[str] = None
    version: Optional[str] = None
    effective_from: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class ConsentAcceptRequest(BaseModel):
    guest_id: int = Field(..., alias="guestId")
    consent_id: int = Field(..., alias="consentId")
    booking_id: Optional[Union[int, str]] = Field(None, alias="bookingId")
    action: Optional[str] = None
    model_config = ConfigDict(populate_by_name=True)


class ConsentLogCreate(BaseModel):
    consent_id: int = Field(..., alias="consentId")
    booking_id: Optional[int] = None
    booking_token: Optional[str] = None
    guest_id: Optional[int] = None
    action: Optional[str] = None
    accepted_by: Optional[str] = None
    accepted_at: Optional[datetime] = None
    model_config = ConfigDict(populate_by_name=True)


class ConsentLogResponse(BaseModel):
    id: int
    booking_id: Optional[int] = None
    booking_token: Optional[str] = None
    consent_id: int
    guest_id: Optional[int] = None
    accepted_at: Optional[datetime] = None
    accepted_by: Optional[str] = None
    status: Optional[str] = None
    action: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)


class AttachBookingRequest(BaseModel):
    """待关联同意书记录：bookingId 可为数字 ID 或入住 token"""
    booking_id: Optional[Union[int, str]] = Field(None, alias="bookingId")
    guest_ids: List[int] = Field(default_factory=list, alias="guestIds")
    guest_id: Optional[int] = Field(None, alias="guestId")
    token: Optional[str] = None
    model_config = ConfigDict(populate_by_name=True)

    def all_guest_ids(self) -> List[int]:
        ids = list(self.guest_ids)
        if self.guest_id is not None and self.guest_id not in ids:
            ids.append(self.guest_id)
        return ids


# ============== 认证 Schemas ==============

class LoginRequest(BaseModel):
    username: str
    password: str


class EmployeeResponse(BaseModel):
    id: int
    username: str
    name: str
    email: Optional[str] = None
    role: EmployeeRole
    status: AccountStatus
    model_config = ConfigDict(from_attributes=True)


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    employee: EmployeeResponse


class EmployeeCreate(BaseModel):
    """邀请员工：同名已归档账号会被重新激活"""
    username: str = Field(..., min_length=3, max_length=50)
    password: str = Field(..., min_length=6)
    name: str = Field(..., min_length=1, max_length=100)
    email: Optional[str] = None
    role: EmployeeRole = EmployeeRole.RECEPTIONIST
