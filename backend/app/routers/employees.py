"""
员工账号路由（仅经理）
"""
from typing import List
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from app.database import get_db
from app.models.ontology import Employee
from app.models.schemas import EmployeeCreate, EmployeeResponse
from app.services.employee_service import EmployeeService
from app.security.auth import require_manager

router = APIRouter(prefix="/employees", tags=["员工管理"])


@router.get("", response_model=List[EmployeeResponse])
def list_employees(
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_manager)
):
    """获取员工列表"""
    return EmployeeService(db).get_employees()


@router.post("", response_model=EmployeeResponse, status_code=status.HTTP_201_CREATED)
def invite_employee(
    data: EmployeeCreate,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_manager)
):
    """创建员工（已归档的同名账号会被重新激活）"""
    try:
        return EmployeeService(db).create_employee(data)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.post("/{employee_id}/archive", response_model=EmployeeResponse)
def archive_employee(
    employee_id: int,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_manager)
):
    """归档员工"""
    try:
        return EmployeeService(db).archive_employee(employee_id)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
