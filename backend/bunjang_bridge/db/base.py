# ORM 基类 + 约束/索引命名规范

from __future__ import annotations
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.schema import MetaData

# Alembic 自动生成迁移时，约束/索引名字按这里的模板生成
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


# synced_products 等表模型都继承这个 Base
class Base(DeclarativeBase):
    metadata = MetaData(naming_convention=NAMING_CONVENTION)
