"""Prompt and structured-output builders for AI categorization"""

CONFIDENCE_LEVELS = ["high", "medium", "low"]
POS_ITEM_TYPES = ["sale", "tip", "tax", "discount", "comp", "service_charge", "other"]

TRANSACTION_SYSTEM_PROMPT = """You are an expert accountant helping categorize bank transactions. \
Analyze each transaction and assign it to the most appropriate account from the Chart of Accounts provided.

CRITICAL RULES:
- You MUST ONLY use account codes that are explicitly listed in the Chart of Accounts provided
- DO NOT invent, guess, or use account codes that are not in the provided list
- If uncertain, choose the closest matching account from the provided list
- Positive amounts are typically income/revenue
- Negative amounts are typically expenses
- Use confidence: "high" for obvious matches, "medium" for likely matches, "low" for uncertain
- Always provide brief reasoning for each categorization
- Learn from the example categorizations provided to understand common patterns for this restaurant"""

POS_SYSTEM_PROMPT = """You are an expert restaurant accountant categorizing POS sales items to the chart of accounts.

CRITICAL RULES:
1. Most POS sales items map to REVENUE accounts
2. Tips and gratuity map to Tips Payable, sales tax to Sales Tax Payable (LIABILITY)
3. Use pos_category (if present) as the PRIMARY signal for categorization
4. Match item names to appropriate revenue categories

ITEM TYPE DETECTION:
- "tip": tip, gratuity, auto-grat
- "tax": tax, HST, GST, VAT, sales tax
- "discount": discount, comp, promo, coupon
- "service_charge": cover charge, service charge
- "sale": everything else

CONFIDENCE LEVELS:
- "high": clear match
- "medium": reasonable match, some ambiguity
- "low": uncertain, needs human review"""


def _account_lines(accounts) -> str:
    return "\n".join(f"- {a.account_code}: {a.account_name} ({a.account_type})" for a in accounts)


def build_transaction_prompt(transactions, accounts, examples: list[dict]) -> str:
    prompt = f"CHART OF ACCOUNTS:\n{_account_lines(accounts)}\n"

    if examples:
        prompt += "\nEXAMPLE CATEGORIZATIONS (learn from these patterns):\n"
        for idx, ex in enumerate(examples, 1):
            prompt += (
                f"{idx}. Description: {ex['description'] or 'N/A'}\n"
                f"   Merchant: {ex['merchant'] or 'N/A'}\n"
                f"   Amount: ${ex['amount']}\n"
                f"   -> Categorized as: {ex['account_code']} - {ex['account_name']} ({ex['account_type']})\n"
            )

    prompt += "\nTRANSACTIONS TO CATEGORIZE:\n"
    for idx, txn in enumerate(transactions, 1):
        prompt += (
            f"{idx}. ID: {txn.id}\n"
            f"   Description: {txn.description or 'N/A'}\n"
            f"   Merchant: {txn.merchant_name or txn.normalized_payee or 'N/A'}\n"
            f"   Amount: ${txn.amount}\n"
            f"   Date: {txn.transaction_date.isoformat()}\n"
        )
    prompt += "\nCategorize each transaction with the appropriate account code, confidence level, and reasoning."
    return prompt


def build_pos_prompt(sales, accounts) -> str:
    lines = "\n".join(
        f"- {a.account_code}: {a.account_name} ({a.account_type}, {a.account_subtype})" for a in accounts
    )
    prompt = f"Chart of Accounts (Revenue & Liability accounts only):\n{lines}\n\nUncategorized POS Sales:\n"
    for idx, sale in enumerate(sales, 1):
        prompt += (
            f"{idx}. Sale ID: {sale.id}\n"
            f"   Item: {sale.item_name}\n"
            f"   POS Category: {sale.pos_category or 'N/A'}\n"
            f"   POS System: {sale.pos_system}\n"
            f"   Quantity: {sale.quantity}\n"
            f"   Total: ${sale.total_price}\n"
            f"   Date: {sale.sale_date.isoformat()}\n"
        )
    prompt += "\nCategorize each sale with sale_id, account_code, item_type, confidence and reasoning."
    return prompt


def _json_schema_format(name: str, item_properties: dict) -> dict:
    return {
        "type": "json_schema",
        "json_schema": {
            "name": name,
            "strict": True,
            "schema": {
                "type": "object",
                "properties": {
                    "categorizations": {
                        "type": "array",
                        "items": {
                            "type": "object",
                            "properties": item_properties,
                            "required": list(item_properties),
                            "additionalProperties": False,
                        },
                    }
                },
                "required": ["categorizations"],
                "additionalProperties": False,
            },
        },
    }


def transaction_request_body(transactions, accounts, examples: list[dict]) -> dict:
    return {
        "messages": [
            {"role": "system", "content": TRANSACTION_SYSTEM_PROMPT},
            {"role": "user", "content": build_transaction_prompt(transactions, accounts, examples)},
        ],
        "response_format": _json_schema_format(
            "transaction_categorizations",
            {
                "transaction_id": {"type": "string", "description": "UUID of the transaction"},
                "account_code": {"type": "string", "description": "Account code from chart of accounts"},
                "confidence": {"type": "string", "enum": CONFIDENCE_LEVELS},
                "reasoning": {"type": "string", "description": "Brief explanation for categorization"},
            },
        ),
    }


def pos_request_body(sales, accounts) -> dict:
    return {
        "messages": [
            {"role": "system", "content": POS_SYSTEM_PROMPT},
            {"role": "user", "content": build_pos_prompt(sales, accounts)},
        ],
        "response_format": _json_schema_format(
            "pos_sales_categorization",
            {
                "sale_id": {"type": "string"},
                "account_code": {"type": "string", "enum": [a.account_code for a in accounts]},
                "item_type": {"type": "string", "enum": POS_ITEM_TYPES},
                "confidence": {"type": "string", "enum": CONFIDENCE_LEVELS},
                "reasoning": {"type": "string"},
            },
        ),
    }
