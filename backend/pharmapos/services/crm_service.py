"""
CRM Service - Customer registry
"""
from typing import Optional, List
from sqlalchemy.orm import Session
from pharmapos.core.exceptions import InvalidInput, NotFound
from pharmapos.models import Customer
from pharmapos.schemas import CustomerCreate


class CustomerService:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, customer_id: int, tenant_id: int = None) -> Optional[Customer]:
        query = self.db.query(Customer).filter(Customer.id == customer_id)
        if tenant_id:
            query = query.filter(Customer.tenant_id == tenant_id)
        return query.first()

    def get_customer(self, customer_id: int) -> Customer:
        """Registry lookup; ownership is checked by the caller against its tenant"""
        customer = self.get_by_id(customer_id)
        if not customer:
            raise NotFound("Customer", customer_id)
        return customer

    def get_by_tenant(self, tenant_id: int, include_inactive: bool = False) -> List[Customer]:
        query = self.db.query(Customer).filter(Customer.tenant_id == tenant_id)
        if not include_inactive:
            query = query.filter(Customer.is_active == True)
        return query.order_by(Customer.name).all()

    def create(self, customer_data: CustomerCreate, tenant_id: int) -> Customer:
        if customer_data.phone:
            existing = self.db.query(Customer).filter(
                Customer.tenant_id == tenant_id,
                Customer.phone == customer_data.phone
            ).first()
            if existing:
                raise InvalidInput(f"Customer with phone {customer_data.phone} already exists")

        customer = Customer(
            name=customer_data.name,
            phone=customer_data.phone,
            email=customer_data.email,
            tenant_id=tenant_id
        )
        self.db.add(customer)
        self.db.flush()
        return customer
