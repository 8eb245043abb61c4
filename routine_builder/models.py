from __future__ import annotations

from typing import Literal, Union

from pydantic import BaseModel, ConfigDict, Field


Role = Literal["system", "user", "assistant"]
ProductId = Union[int, str]


class Message(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: Role
    content: str


class Product(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    id: ProductId
    name: str
    brand: str = ""
    category: str = ""
    description: str = ""
    image: str = ""


class ProductBrief(BaseModel):
    """The part of a product the assistant sees. Field order is the wire order."""

    name: str
    brand: str
    category: str
    description: str

    @classmethod
    def from_product(cls, product: Product) -> "ProductBrief":
        return cls(
            name=product.name,
            brand=product.brand,
            category=product.category,
            description=product.description,
        )


class Catalog(BaseModel):
    model_config = ConfigDict(extra="ignore")

    products: list[Product] = Field(default_factory=list)


class ChatCompletionRequest(BaseModel):
    messages: list[Message]
    model: str


class ChoiceMessage(BaseModel):
    model_config = ConfigDict(extra="ignore")

    role: str = "assistant"
    content: str


class Choice(BaseModel):
    model_config = ConfigDict(extra="ignore")

    message: ChoiceMessage


class ChatCompletionResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    choices: list[Choice]
