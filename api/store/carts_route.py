from fastapi import APIRouter, Depends, status

from core.response_envelope import document_response
from schemas.cart_schema import CalculatedPriceItemsIn, CartCreate
from security.publishable_key import verify_publishable_key
from services.cart_service import add_items_with_calculated_price, create_cart, get_cart_or_404

router = APIRouter(prefix="/carts", tags=["Store Carts"], dependencies=[Depends(verify_publishable_key)])


@router.post("")
@document_response(message="Cart created successfully", status_code=status.HTTP_201_CREATED)
async def create_store_cart(payload: CartCreate):
    return {"cart": await create_cart(payload)}


@router.get("/{cart_id}")
@document_response(
    message="Cart fetched successfully",
    response_codes={404: "Cart not found"},
)
async def fetch_store_cart(cart_id: str):
    return {"cart": await get_cart_or_404(cart_id)}


@router.post("/{cart_id}/line-items-calculated-price")
@document_response(
    message="Line items added with calculated prices",
    response_codes={
        404: "Cart not found",
        409: "Cart is already completed",
        502: "Pricing provider failed",
    },
)
async def add_line_items_with_calculated_price(cart_id: str, payload: CalculatedPriceItemsIn):
    """
    Price every item through the pricing service, then add them to the cart
    as custom-price line items.
    """
    return {"cart": await add_items_with_calculated_price(cart_id, payload.items)}
