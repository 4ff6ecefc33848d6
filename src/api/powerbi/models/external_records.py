from datetime import date
from typing import Any, ClassVar, Dict, Optional, Tuple, Type, Union
from sqlalchemy import UniqueConstraint
from sqlmodel import Field, JSON
from src.api.common.constants.sync import EntityType
from src.api.common.models.base import BaseModel, TimestampMixin


class ExternalRecordMixin:
    """Columns shared by every destination table"""
    group_id: int = Field(index=True)
    # Stable business key from the upstream dataset
    external_id: str = Field(index=True)
    # sa_type, not sa_column: each table needs its own Column
    raw_data: Dict[str, Any] = Field(default_factory=dict, sa_type=JSON)


class ExternalSale(BaseModel, ExternalRecordMixin, TimestampMixin, table=True):
    __tablename__ = "external_sales"
    __table_args__ = (UniqueConstraint("group_id", "external_id", "record_date",
                                       name="uq_external_sales_key"),)
    conflict_columns: ClassVar[Tuple[str, ...]] = ("group_id", "external_id", "record_date")

    id: Optional[int] = Field(default=None, primary_key=True)
    record_date: date = Field(index=True)
    venda_id: Optional[str] = None
    external_product_id: Optional[str] = None
    external_employee_id: Optional[str] = None
    external_company_id: Optional[str] = Field(default=None, index=True)
    sale_mode: Optional[str] = None
    period: Optional[str] = None
    quantity: Optional[float] = None
    total_value: Optional[float] = None
    cost: Optional[float] = None


class ExternalCashFlow(BaseModel, ExternalRecordMixin, TimestampMixin, table=True):
    __tablename__ = "external_cash_flow"
    __table_args__ = (UniqueConstraint("group_id", "external_id", "record_date",
                                       name="uq_external_cash_flow_key"),)
    conflict_columns: ClassVar[Tuple[str, ...]] = ("group_id", "external_id", "record_date")

    id: Optional[int] = Field(default=None, primary_key=True)
    record_date: date = Field(index=True)
    external_employee_id: Optional[str] = None
    external_company_id: Optional[str] = Field(default=None, index=True)
    payment_method: Optional[str] = None
    transaction_type: Optional[str] = None
    transaction_mode: Optional[str] = None
    period: Optional[str] = None
    amount: Optional[float] = None


class ExternalCashFlowStatement(BaseModel, ExternalRecordMixin, TimestampMixin, table=True):
    __tablename__ = "external_cash_flow_statement"
    __table_args__ = (UniqueConstraint("group_id", "external_id", "record_date",
                                       name="uq_external_cash_flow_statement_key"),)
    conflict_columns: ClassVar[Tuple[str, ...]] = ("group_id", "external_id", "record_date")

    id: Optional[int] = Field(default=None, primary_key=True)
    record_date: date = Field(index=True)
    category_id: Optional[str] = None
    external_company_id: Optional[str] = Field(default=None, index=True)
    amount: Optional[float] = None


class ExternalCompany(BaseModel, ExternalRecordMixin, TimestampMixin, table=True):
    __tablename__ = "external_companies"
    __table_args__ = (UniqueConstraint("group_id", "external_id",
                                       name="uq_external_companies_key"),)
    conflict_columns: ClassVar[Tuple[str, ...]] = ("group_id", "external_id")

    id: Optional[int] = Field(default=None, primary_key=True)
    name: Optional[str] = None
    fantasy_name: Optional[str] = None
    cnpj: Optional[str] = None
    status: Optional[str] = None
    code: Optional[str] = None


class ExternalEmployee(BaseModel, ExternalRecordMixin, TimestampMixin, table=True):
    __tablename__ = "external_employees"
    __table_args__ = (UniqueConstraint("group_id", "external_id",
                                       name="uq_external_employees_key"),)
    conflict_columns: ClassVar[Tuple[str, ...]] = ("group_id", "external_id")

    id: Optional[int] = Field(default=None, primary_key=True)
    name: Optional[str] = None
    external_company_id: Optional[str] = None
    external_code: Optional[str] = None
    email: Optional[str] = None
    department: Optional[str] = None
    position: Optional[str] = None
    status: Optional[str] = None
    code: Optional[str] = None


class ExternalProduct(BaseModel, ExternalRecordMixin, TimestampMixin, table=True):
    __tablename__ = "external_products"
    __table_args__ = (UniqueConstraint("group_id", "external_id",
                                       name="uq_external_products_key"),)
    conflict_columns: ClassVar[Tuple[str, ...]] = ("group_id", "external_id")

    id: Optional[int] = Field(default=None, primary_key=True)
    name: Optional[str] = None
    external_company_id: Optional[str] = None
    type: Optional[str] = None
    category: Optional[str] = None
    product_group: Optional[str] = None
    code: Optional[str] = None
    description: Optional[str] = None


class ExternalCategory(BaseModel, ExternalRecordMixin, TimestampMixin, table=True):
    __tablename__ = "external_categories"
    __table_args__ = (UniqueConstraint("group_id", "external_id",
                                       name="uq_external_categories_key"),)
    conflict_columns: ClassVar[Tuple[str, ...]] = ("group_id", "external_id")

    id: Optional[int] = Field(default=None, primary_key=True)
    name: Optional[str] = None
    external_company_id: Optional[str] = None
    layer_01: Optional[str] = None
    layer_02: Optional[str] = None
    layer_03: Optional[str] = None
    layer_04: Optional[str] = None
    code: Optional[str] = None
    parent_id: Optional[str] = None


class ExternalStock(BaseModel, ExternalRecordMixin, TimestampMixin, table=True):
    __tablename__ = "external_stock"
    __table_args__ = (UniqueConstraint("group_id", "external_id",
                                       name="uq_external_stock_key"),)
    conflict_columns: ClassVar[Tuple[str, ...]] = ("group_id", "external_id")

    id: Optional[int] = Field(default=None, primary_key=True)
    external_product_id: Optional[str] = None
    product_name: Optional[str] = None
    product_group: Optional[str] = None
    external_company_id: Optional[str] = None
    unit: Optional[str] = None
    purchase_unit: Optional[str] = None
    conversion_factor: Optional[float] = None
    min_quantity: Optional[float] = None
    max_quantity: Optional[float] = None
    quantity: Optional[float] = None
    last_cost: Optional[float] = None
    average_cost: Optional[float] = None
    updated_at_external: Optional[str] = None


ENTITY_MODELS: Dict[EntityType, Type[BaseModel]] = {
    EntityType.SALES: ExternalSale,
    EntityType.CASH_FLOW: ExternalCashFlow,
    EntityType.CASH_FLOW_STATEMENT: ExternalCashFlowStatement,
    EntityType.COMPANIES: ExternalCompany,
    EntityType.EMPLOYEES: ExternalEmployee,
    EntityType.PRODUCTS: ExternalProduct,
    EntityType.CATEGORIES: ExternalCategory,
    EntityType.STOCK: ExternalStock,
}


def get_entity_model(entity_type: Union[EntityType, str]) -> Type[BaseModel]:
    """Destination table model for an entity type"""
    try:
        return ENTITY_MODELS[EntityType(entity_type)]
    except (KeyError, ValueError):
        raise ValueError(f"Unsupported entity type: {entity_type}")
