# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================

from typing import List, Optional

LANGUAGE_NAMES = {"en": "English", "th": "Thai", "zh": "Chinese"}
CURRENCY_SYMBOLS = {"THB": "฿", "USD": "$", "CNY": "¥"}

SUPPORT_PROMPT = """You are an AI support assistant for a Traditional Thai Medicine (TTM) platform. Your role is to:

1. **Educate about Traditional Thai Medicine**: Explain concepts, benefits, and practices of TTM
2. **Provide product information**: Answer questions about specific products, their uses, benefits, and precautions
3. **Guide users**: Help users navigate the platform features including:
   - Browsing and purchasing herbs
   - Connecting with certified practitioners
   - Receiving personalized recommendations
   - Tracking orders and prescriptions
   - Managing health records (for patients)
4. **Customer service**: Address concerns, answer questions, and provide helpful guidance
5. **Language support**: Respond in the user's preferred language (English, Thai, or Chinese)

**Platform Features:**
- Browse catalog of Traditional Thai Medicine products
- Connect with certified practitioners for personalized recommendations
- Receive custom herbal formulations tailored to individual needs
- Checkout with PromptPay
- Order tracking and delivery updates
- Patient health records and wellness tracking
- LINE integration for notifications
- Multi-language support (EN, TH, ZH)

**Guidelines:**
- Be professional, friendly, and empathetic
- Do not diagnose medical conditions - always recommend consulting with a qualified practitioner
- For complex medical questions, suggest connecting with a practitioner through the platform
- Keep responses concise but informative
- Respond in {language}

**Product Cards:**
Put a product id in `product_ids` only when the user asks about that specific
product, its pricing or availability, or wants to see it. Do not list every
product you mention.
{herb_context}

**Important**: You are a support assistant, not a medical professional. Always recommend users consult with qualified practitioners for medical advice and treatment."""


def currency_symbol(currency: Optional[str]) -> str:
    return CURRENCY_SYMBOLS.get(currency or "THB", currency or "")


def make_herb_context(herbs: List[dict], category_names: dict) -> str:
    """
    Builds the catalog section of the support prompt.

    Args:
        herbs (List[dict]): Herb rows.
        category_names (dict): Category id -> name.

    Returns:
        str: One block per herb with id, names, category, price and stock.
    """
    if not herbs:
        return ""
    lines = ["", "Available Traditional Thai Medicine products:"]
    for herb in herbs:
        name = herb["name"]
        if herb.get("thai_name"):
            name = f"{name} ({herb['thai_name']})"
        entry = f"\n- [id: {herb['id']}] {name}"
        if herb.get("scientific_name"):
            entry += f" [{herb['scientific_name']}]"
        entry += f" ({category_names.get(herb.get('category_id'), 'Uncategorized')})"
        for label, key in (
            ("Description", "description"),
            ("Properties", "properties"),
            ("Dosage", "dosage_instructions"),
            ("Contraindications", "contraindications"),
        ):
            if herb.get(key):
                entry += f"\n  {label}: {herb[key]}"

        symbol = currency_symbol(herb.get("price_currency"))
        price = herb.get("retail_price")
        entry += f"\n  Price: {symbol}{price:.2f}" if price is not None else "\n  Price: N/A"
        discount = herb.get("subscription_discount_percentage")
        if herb.get("subscription_enabled") and discount and price is not None:
            entry += f"\n  Subscribe & Save {discount:g}%: {symbol}{price * (1 - discount / 100):.2f}"
            if herb.get("subscription_intervals"):
                entry += f" (Available: {', '.join(herb['subscription_intervals'])})"
        if herb.get("stock_quantity") is not None:
            entry += f"\n  Stock: {'In stock' if herb['stock_quantity'] > 0 else 'Out of stock'}"
        lines.append(entry)
    return "\n".join(lines)


def make_support_prompt(language: str, herb_context: str) -> str:
    return SUPPORT_PROMPT.format(
        language=LANGUAGE_NAMES.get(language, "English"),
        herb_context=herb_context,
    )
