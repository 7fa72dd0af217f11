"""
Reference Data Models

Categories, credit cards and future expenses are simple entities owned
by the user and looked up by id from transactions.
"""

from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from finance_tracker.models.transaction import new_id


class CardBrand(str, Enum):
    """Credit card brands offered when registering a card."""
    VISA = "visa"
    MASTERCARD = "mastercard"
    ELO = "elo"
    AMEX = "amex"
    HIPERCARD = "hipercard"
    OTHER = "other"


class _Document(BaseModel):
    """Shared document conversion for reference entities."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(
        default_factory=new_id,
        description="Unique document id"
    )

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude={"id"})

    @classmethod
    def from_document(cls, doc_id: str, data: dict[str, Any]):
        return cls(id=doc_id, **data)


class Category(_Document):
    """
    A spending or income category.

    Default categories are built in and never stored; custom
    categories live in the user's `categories` collection.
    """

    name: str = Field(
        ...,
        min_length=1,
        max_length=50,
        description="Display name (e.g., 'Moradia')"
    )
    icon: str = Field(
        default="Sprout",
        max_length=50,
        description="Icon name shown next to the category"
    )
    is_custom: bool = Field(
        default=True,
        description="False for the built-in categories"
    )

    def to_document(self) -> dict[str, Any]:
        # is_custom is implied by living in the collection
        return self.model_dump(mode="json", exclude={"id", "is_custom"})


class CreditCard(_Document):
    """A credit card registered by the user."""

    name: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Nickname for the card (e.g., 'Personal Visa')"
    )
    brand: CardBrand = CardBrand.OTHER
    limit: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        decimal_places=2,
        description="Credit limit"
    )
    closing_day: int = Field(
        default=1,
        ge=1,
        le=31,
        description="Day of the month the statement closes"
    )
    due_day: int = Field(
        default=10,
        ge=1,
        le=31,
        description="Day of the month the statement is due"
    )


class FutureExpense(_Document):
    """
    A bill to pay, without a date yet.

    Paying it turns it into a real transaction.
    """

    description: str = Field(
        ...,
        min_length=1,
        max_length=200,
    )
    amount: Decimal = Field(
        ...,
        gt=0,
        decimal_places=2,
        description="Estimated amount"
    )


DEFAULT_CATEGORIES: tuple[Category, ...] = (
    Category(id="moradia", name="Moradia", icon="Home", is_custom=False),
    Category(id="alimentacao", name="Alimentação", icon="UtensilsCrossed", is_custom=False),
    Category(id="transporte", name="Transporte", icon="Car", is_custom=False),
    Category(id="lazer", name="Lazer", icon="Smile", is_custom=False),
    Category(id="saude", name="Saúde", icon="HeartPulse", is_custom=False),
    Category(id="compras", name="Compras", icon="ShoppingBag", is_custom=False),
    Category(id="salario", name="Salário", icon="DollarSign", is_custom=False),
    Category(id="recorrente", name="Recorrente", icon="Repeat", is_custom=False),
    Category(id="outros", name="Outros", icon="Sprout", is_custom=False),
)


def get_default_category(category_id: str) -> Optional[Category]:
    """Look up a built-in category by id."""
    for category in DEFAULT_CATEGORIES:
        if category.id == category_id:
            return category
    return None
