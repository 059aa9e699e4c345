"""AI categorization service - suggestions only, a person confirms them"""

import logging

from fastapi import HTTPException
from sqlalchemy import or_
from sqlalchemy.orm import Session

from ... import config
from ...models import BankTransaction, ChartOfAccount
from ...models_pnl import UnifiedSale
from ...services import ai_caller
from ..accounting.service import UNCATEGORIZED_ACCOUNT_CODES
from .prompts import CONFIDENCE_LEVELS, POS_ITEM_TYPES, pos_request_body, transaction_request_body

logger = logging.getLogger(__name__)

TRANSACTION_BATCH_SIZE = 100
POS_BATCH_SIZE = 50
EXAMPLE_COUNT = 10

AI_UNAVAILABLE = "AI categorization temporarily unavailable. All AI models failed to provide valid responses."


def _require_api_key() -> str:
    if not config.OPENROUTER_API_KEY:
        logger.error("❌ OPENROUTER_API_KEY not configured")
        raise HTTPException(status_code=500, detail="AI service not configured. Please add your OpenRouter API key.")
    return config.OPENROUTER_API_KEY


def _categorizations(result) -> list:
    if not result or not isinstance(result.get("data"), dict):
        return []
    items = result["data"].get("categorizations")
    return [item for item in items if isinstance(item, dict)] if isinstance(items, list) else []


class AICategorizationService:
    def __init__(self, db: Session):
        self.db = db

    # ========================================================================
    # BANK TRANSACTIONS
    # ========================================================================

    def _uncategorized_account_ids(self, restaurant_id: str) -> list[str]:
        rows = (
            self.db.query(ChartOfAccount.id)
            .filter(
                ChartOfAccount.restaurant_id == restaurant_id,
                ChartOfAccount.account_code.in_(UNCATEGORIZED_ACCOUNT_CODES),
            )
            .all()
        )
        return [row.id for row in rows]

    def _needs_suggestion(self, restaurant_id: str):
        uncategorized_ids = self._uncategorized_account_ids(restaurant_id)
        category_filter = BankTransaction.category_id.is_(None)
        if uncategorized_ids:
            category_filter = or_(category_filter, BankTransaction.category_id.in_(uncategorized_ids))
        return self.db.query(BankTransaction).filter(
            BankTransaction.restaurant_id == restaurant_id,
            BankTransaction.status != "excluded",
            category_filter,
            BankTransaction.suggested_category_id.is_(None),
        )

    def _examples(self, restaurant_id: str) -> list[dict]:
        rows = (
            self.db.query(BankTransaction, ChartOfAccount)
            .join(ChartOfAccount, ChartOfAccount.id == BankTransaction.category_id)
            .filter(
                BankTransaction.restaurant_id == restaurant_id,
                BankTransaction.is_categorized.is_(True),
                ChartOfAccount.account_code.notin_(UNCATEGORIZED_ACCOUNT_CODES),
            )
            .order_by(BankTransaction.transaction_date.desc())
            .limit(EXAMPLE_COUNT)
            .all()
        )
        return [
            {
                "description": txn.description,
                "merchant": txn.merchant_name or txn.normalized_payee,
                "amount": txn.amount,
                "account_code": account.account_code,
                "account_name": account.account_name,
                "account_type": account.account_type,
            }
            for txn, account in rows
        ]

    async def categorize_transactions(self, restaurant_id: str) -> dict:
        api_key = _require_api_key()

        pending = self._needs_suggestion(restaurant_id)
        transactions = (
            pending.order_by(BankTransaction.transaction_date.desc()).limit(TRANSACTION_BATCH_SIZE).all()
        )
        if not transactions:
            return {
                "success": True,
                "message": "No transactions need AI categorization. All transactions either have categories "
                "or already have AI suggestions pending review.",
                "categorized": 0,
            }
        remaining_before = pending.count()

        accounts = (
            self.db.query(ChartOfAccount)
            .filter(
                ChartOfAccount.restaurant_id == restaurant_id,
                ChartOfAccount.is_active.is_(True),
                ChartOfAccount.account_code.notin_(UNCATEGORIZED_ACCOUNT_CODES),
            )
            .order_by(ChartOfAccount.account_code)
            .all()
        )
        if not accounts:
            raise HTTPException(
                status_code=400,
                detail="No active categorizable accounts found. Please set up your chart of accounts first.",
            )

        examples = self._examples(restaurant_id)
        logger.info(f"🎯 Categorizing {len(transactions)} transactions with {len(examples)} examples")

        result = await ai_caller.call_ai_with_fallback(
            transaction_request_body(transactions, accounts, examples), api_key
        )
        categorizations = _categorizations(result)
        if not categorizations:
            raise HTTPException(status_code=503, detail=AI_UNAVAILABLE)

        accounts_by_code = {account.account_code: account for account in accounts}
        batch = {txn.id: txn for txn in transactions}
        results = []
        for item in categorizations:
            account = accounts_by_code.get(item.get("account_code"))
            if account is None:
                logger.warning(f"⚠️ Account code {item.get('account_code')} not in chart of accounts, skipping")
                continue
            txn = batch.get(item.get("transaction_id"))
            if txn is None:
                continue
            confidence = item.get("confidence")
            txn.suggested_category_id = account.id
            txn.ai_confidence = confidence if confidence in CONFIDENCE_LEVELS else "low"
            txn.ai_reasoning = item.get("reasoning")
            txn.is_categorized = False
            results.append(
                {
                    "transaction_id": txn.id,
                    "suggested_account": account.account_name,
                    "confidence": txn.ai_confidence,
                    "reasoning": txn.ai_reasoning,
                }
            )
        self.db.commit()

        categorized = len(results)
        remaining = remaining_before - categorized
        has_more = remaining > 0
        message = f"AI suggested categories for {categorized} transactions. " + (
            f"{remaining} more need categorization - click again to continue."
            if has_more
            else "All transactions have been processed!"
        )
        logger.info(f"✅ {message} (model: {result['model']})")
        return {
            "success": True,
            "message": message,
            "categorized": categorized,
            "total": len(transactions),
            "remaining": remaining,
            "hasMore": has_more,
            "results": results,
        }

    # ========================================================================
    # POS SALES
    # ========================================================================

    async def categorize_pos_sales(self, restaurant_id: str) -> dict:
        api_key = _require_api_key()

        sales = (
            self.db.query(UnifiedSale)
            .filter(
                UnifiedSale.restaurant_id == restaurant_id,
                UnifiedSale.is_categorized.is_(False),
                UnifiedSale.suggested_category_id.is_(None),
            )
            .order_by(UnifiedSale.sale_date.desc())
            .limit(POS_BATCH_SIZE)
            .all()
        )
        if not sales:
            return {"success": True, "message": "No uncategorized sales found", "count": 0, "categorized": 0}

        accounts = (
            self.db.query(ChartOfAccount)
            .filter(
                ChartOfAccount.restaurant_id == restaurant_id,
                ChartOfAccount.is_active.is_(True),
                ChartOfAccount.account_type.in_(("revenue", "liability")),
            )
            .order_by(ChartOfAccount.account_code)
            .all()
        )
        if not accounts:
            raise HTTPException(status_code=400, detail="No active chart of accounts found")

        logger.info(f"🚀 Starting AI categorization for {len(sales)} sales")
        result = await ai_caller.call_ai_with_fallback(pos_request_body(sales, accounts), api_key)
        categorizations = _categorizations(result)
        if not categorizations:
            raise HTTPException(status_code=503, detail=AI_UNAVAILABLE)

        account_ids = {account.account_code: account.id for account in accounts}
        batch = {sale.id: sale for sale in sales}
        categorized = 0
        for item in categorizations:
            account_id = account_ids.get(item.get("account_code"))
            sale = batch.get(item.get("sale_id"))
            if account_id is None or sale is None:
                logger.warning(f"⚠️ Skipping suggestion for sale {item.get('sale_id')}: {item.get('account_code')}")
                continue
            confidence = item.get("confidence")
            item_type = item.get("item_type")
            sale.suggested_category_id = account_id
            sale.ai_confidence = confidence if confidence in CONFIDENCE_LEVELS else "low"
            sale.ai_reasoning = item.get("reasoning")
            sale.item_type = item_type if item_type in POS_ITEM_TYPES else "sale"
            categorized += 1
        self.db.commit()

        logger.info(f"✅ AI suggested categories for {categorized} sales (model: {result['model']})")
        return {
            "success": True,
            "message": f"AI suggested categories for {categorized} sales",
            "count": len(sales),
            "categorized": categorized,
            "remaining": len(sales) - categorized,
        }
