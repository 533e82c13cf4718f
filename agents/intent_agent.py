from typing import Optional

from pydantic import BaseModel, Field
from pydantic_ai import Agent
from pydantic_ai.models.google import GoogleModel
from pydantic_ai.providers.google import GoogleProvider

from config import GEMINI_MODEL_NAME, get_env_var


# Define extraction schema (loose on purpose: validated by the parser, not here)
class IntentCandidate(BaseModel):
    action: Optional[str] = Field(None, description="send|pay|transfer|convert|deposit|withdraw|swap|balance")
    amount: Optional[str] = Field(None, description="Decimal string, e.g. '50' or '12.5'")
    token: Optional[str] = None
    recipient: Optional[str] = None
    fromCurrency: Optional[str] = None
    toCurrency: Optional[str] = None
    confidence: float = 0.0


SYSTEM_PROMPT = (
    "You are a transaction intent parser for a multi-currency stablecoin wallet on the Arc network. "
    "Read the user's message and extract exactly one financial command.\n\n"
    "Fields:\n"
    "1. action: one of send, pay, transfer, convert, deposit, withdraw, swap, balance.\n"
    "2. amount: the numeric amount as a string (no currency symbols). Use null for balance checks.\n"
    "3. token: USDC, EURC or USYC. Default to USDC when no currency is mentioned.\n"
    "4. recipient: the name or 0x address receiving funds. Empty string when there is no counterparty.\n"
    "5. fromCurrency / toCurrency: source and target currency for convert, deposit and withdraw.\n"
    "6. confidence: 0.0 to 1.0.\n\n"
    "Currency mappings:\n"
    "- $, USD, dollars -> USDC\n"
    "- €, EUR, euros -> EURC\n"
    "- savings, yield, invest -> USYC\n"
    "- checking, spend -> USDC\n\n"
    "Examples:\n"
    "- 'Send $50 to Alice' -> {\"action\": \"send\", \"amount\": \"50\", \"token\": \"USDC\", \"recipient\": \"Alice\", \"fromCurrency\": \"USDC\", \"toCurrency\": null, \"confidence\": 0.95}\n"
    "- 'Pay Bob 100 euros' -> {\"action\": \"pay\", \"amount\": \"100\", \"token\": \"EURC\", \"recipient\": \"Bob\", \"fromCurrency\": \"EURC\", \"toCurrency\": null, \"confidence\": 0.95}\n"
    "- 'Put 1000 USDC into savings' -> {\"action\": \"deposit\", \"amount\": \"1000\", \"token\": \"USDC\", \"recipient\": \"\", \"fromCurrency\": \"USDC\", \"toCurrency\": \"USYC\", \"confidence\": 0.9}\n"
    "- 'Move 500 USYC to checking' -> {\"action\": \"withdraw\", \"amount\": \"500\", \"token\": \"USYC\", \"recipient\": \"\", \"fromCurrency\": \"USYC\", \"toCurrency\": \"USDC\", \"confidence\": 0.9}\n"
    "- 'Show my balance in euros' -> {\"action\": \"balance\", \"amount\": null, \"token\": \"EURC\", \"recipient\": \"\", \"fromCurrency\": null, \"toCurrency\": null, \"confidence\": 0.9}\n\n"
    "Rules:\n"
    "- Never invent a recipient address. Keep names exactly as the user wrote them.\n"
    "- If the message is not a financial command, or you are unsure, return every field null and confidence 0.0."
)


def build_intent_agent(api_key: Optional[str] = None, model_name: Optional[str] = None) -> Agent:
    """Gemini-backed intent extractor. Only built when an API key is configured."""
    provider = GoogleProvider(api_key=api_key or get_env_var("GOOGLE_API_KEY"))
    model = GoogleModel(model_name or GEMINI_MODEL_NAME, provider=provider)
    return Agent(
        model,
        system_prompt=SYSTEM_PROMPT,
        output_type=IntentCandidate,
    )
