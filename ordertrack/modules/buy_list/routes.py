from fastapi import APIRouter, Depends

from ordertrack.core.dependencies import get_buy_list
from ordertrack.modules.buy_list.schemas import (
    BuyListItemCreate, BuyListItemResponse, BuyListItemUpdate, BuyListSummary
)
from ordertrack.modules.buy_list.service import BuyListResource

router = APIRouter(prefix="/buy-list", tags=["buy-list"])


@router.get("")
async def list_items(buy_list: BuyListResource = Depends(get_buy_list)):
    """Items split into still-to-buy and received, with the pending cost estimate"""
    summary: BuyListSummary = buy_list.partition()
    snapshot = buy_list.snapshot()
    return {**summary.model_dump(), "loading": snapshot["loading"], "error": snapshot["error"]}


@router.post("", response_model=BuyListItemResponse, status_code=201)
async def add_item(item_data: BuyListItemCreate, buy_list: BuyListResource = Depends(get_buy_list)):
    return await buy_list.add_item(item_data)


@router.put("/{item_id}", response_model=BuyListItemResponse)
async def update_item(
    item_id: str,
    item_data: BuyListItemUpdate,
    buy_list: BuyListResource = Depends(get_buy_list)
):
    return await buy_list.update_item(item_id, item_data)


@router.post("/{item_id}/toggle", response_model=BuyListItemResponse)
async def toggle_item(item_id: str, buy_list: BuyListResource = Depends(get_buy_list)):
    """Flip between pending and received"""
    return await buy_list.toggle_bought(item_id)


@router.delete("/{item_id}", status_code=204)
async def delete_item(item_id: str, buy_list: BuyListResource = Depends(get_buy_list)):
    await buy_list.delete_item(item_id)
    return None
