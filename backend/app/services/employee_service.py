"""
员工服务 - 本体操作层
管理 Employee 对象和认证
账号停用通过 active / archived 状态表达，不做软删除
"""
import logging
from typing import List, Optional
from sqlalchemy.orm import Session
from app.models.ontology import Employee, EmployeeRole, AccountStatus
from app.models.schemas import EmployeeCreate
from app.security.auth import get_password_hash, verify_password, create_access_token

logger = logging.getLogger(__name__)


class EmployeeService:
    """员工服务"""

    def __init__(self, db: Session):
        self.db = db

    def get_employees(self, status: Optional[AccountStatus] = None) -> List[Employee]:
        """获取员工列表"""
        query = self.db.query(Employee)
        if status:
            query = query.filter(Employee.status == status)
        return query.order_by(Employee.id).all()

    def get_employee(self, employee_id: int) -> Optional[Employee]:
        return self.db.query(Employee).filter(Employee.id == employee_id).first()

    def get_employee_by_username(self, username: str) -> Optional[Employee]:
        return self.db.query(Employee).filter(Employee.username == username).first()

    def create_employee(self, data: EmployeeCreate) -> Employee:
        """
        创建员工
        同名账号已归档时重新激活并重置密码；仍在用时报错
        """
        existing = self.get_employee_by_username(data.username)
        if existing and existing.status == AccountStatus.ACTIVE:
            raise ValueError(f"用户名 '{data.username}' 已存在")

        if existing:
            existing.status = AccountStatus.ACTIVE
            existing.password_hash = get_password_hash(data.password)
            existing.name = data.name
            existing.email = data.email
            existing.role = data.role
            employee = existing
            logger.info(f"Archived employee {data.username} reactivated")
        else:
            employee = Employee(
                username=data.username,
                password_hash=get_password_hash(data.password),
                name=data.name,
                email=data.email,
                role=data.role,
                status=AccountStatus.ACTIVE,
            )
            self.db.add(employee)

        self.db.commit()
        self.db.refresh(employee)
        return employee

    def archive_employee(self, employee_id: int) -> Employee:
        """归档员工（系统需至少保留一个在用的经理）"""
        employee = self.get_employee(employee_id)
        if not employee:
            raise ValueError("员工不存在")
        if employee.status == AccountStatus.ARCHIVED:
            return employee

        if employee.role == EmployeeRole.MANAGER:
            manager_count = self.db.query(Employee).filter(
                Employee.role == EmployeeRole.MANAGER,
                Employee.status == AccountStatus.ACTIVE
            ).count()
            if manager_count <= 1:
                raise ValueError("系统需至少保留一个经理账号")

        employee.status = AccountStatus.ARCHIVED
        self.db.commit()
        self.db.refresh(employee)
        return employee

    def authenticate(self, username: str, password: str) -> Optional[dict]:
        """认证登录"""
        employee = self.get_employee_by_username(username)
        if not employee:
            return None

        if not employee.is_active:
            raise ValueError("账号已归档")

        if not verify_password(password, employee.password_hash):
            return None

        token = create_access_token(employee.id, employee.role)

        return {
            'access_token': token,
            'token_type': 'bearer',
            'employee': {
                'id': employee.id,
                'username': employee.username,
                'name': employee.name,
                'email': employee.email,
                'role': employee.role,
                'status': employee.status,
            }
        }
