"""Invoice field extraction through a language-model completion endpoint.

Builds an instruction prompt from recognized text and a fixed catalogue of
invoice fields, posts it to ``{base_url}/completion`` with a grammar that
forces a JSON answer, and parses the returned ``content``.
"""

import json
from dataclasses import dataclass
from typing import Any

import requests

from invoice_ocr.utils.config import ExtractionConfig
from invoice_ocr.utils.logger import get_logger

logger = get_logger(__name__)

INVOICE_FIELDS: dict[str, str] = {
    "vendor_name": "name of the company that issued the invoice",
    "vendor_address": "postal address of the issuing company",
    "invoice_id": "invoice number",
    "invoice_date": "date the invoice was issued",
    "due_date": "date by which the invoice must be paid",
    "customer_name": "name of the invoiced customer",
    "customer_id": "customer number assigned by the vendor",
    "net_amount": "total amount before tax",
    "tax_amount": "total tax amount",
    "tax_rate": "applied tax rate",
    "total_amount": "total amount including tax",
    "currency": "currency of the amounts",
    "tax_id": "tax number of the vendor",
    "vat_id": "VAT identification number of the vendor",
    "iban": "IBAN of the vendor bank account",
    "bic": "BIC of the vendor bank",
    "payment_terms": "payment terms",
    "line_items": "list of invoice positions with description, quantity and amount",
}

# GBNF grammar accepted by llama.cpp style servers; restricts output to JSON.
JSON_GRAMMAR = r"""root   ::= object
value  ::= object | array | string | number | ("true" | "false" | "null") ws

object ::=
  "{" ws (
            string ":" ws value
    ("," ws string ":" ws value)*
  )? "}" ws

array  ::=
  "[" ws (
            value
    ("," ws value)*
  )? "]" ws

string ::=
  "\"" (
    [^"\\\x7F\x00-\x1F] |
    "\\" (["\\/bfnrt] | "u" [0-9a-fA-F]{4})
  )* "\"" ws

number ::= ("-"? ([0-9] | [1-9] [0-9]{0,15})) ("." [0-9]+)? ([eE] [-+]? [0-9] [1-9]{0,15})? ws

ws ::= | " " | "\n" [ \t]{0,20}
"""


@dataclass(frozen=True)
class ExtractionOutcome:
    """Result of one extraction call: either a parsed mapping or an error."""

    result: dict[str, Any] | None = None
    error: str | None = None
    status_code: int | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.result is not None

    @classmethod
    def success(
        cls, result: dict[str, Any], status_code: int | None = None
    ) -> "ExtractionOutcome":
        return cls(result=result, status_code=status_code)

    @classmethod
    def failure(cls, error: str, status_code: int | None = None) -> "ExtractionOutcome":
        return cls(error=error, status_code=status_code)


def build_prompt(text: str) -> str:
    """Build the extraction instruction for a recognized invoice text.

    Args:
        text: Cumulative OCR text of the document.

    Returns:
        Prompt listing the field catalogue followed by the text.
    """
    catalogue = "\n".join(f"- {key}: {desc}" for key, desc in INVOICE_FIELDS.items())
    return (
        "Below is the OCR text of a scanned invoice. Find the following "
        "properties and answer with a single JSON object using exactly these "
        "keys. Use null for properties that are not present in the text.\n\n"
        f"Properties:\n{catalogue}\n\n"
        f"Text:\n{text}\n\n"
        "JSON:\n"
    )


def build_payload(text: str, config: ExtractionConfig) -> dict[str, Any]:
    """Build the JSON body of a completion request."""
    return {
        "prompt": build_prompt(text),
        "n_predict": config.n_predict,
        "temperature": config.temperature,
        "top_k": config.top_k,
        "top_p": config.top_p,
        "repeat_penalty": config.repeat_penalty,
        "stop": list(config.stop),
        "grammar": JSON_GRAMMAR,
    }


class LLMExtractor:
    """Client for the completion endpoint that extracts invoice fields.

    Args:
        config: Extraction configuration with endpoint and sampling settings.
        session: Optional ``requests`` session; a new one is created if omitted.
    """

    def __init__(
        self,
        config: ExtractionConfig,
        session: requests.Session | None = None,
    ) -> None:
        self.config = config
        self.session = session or requests.Session()

    @property
    def endpoint(self) -> str:
        return f"{self.config.base_url.rstrip('/')}/completion"

    def extract(self, text: str) -> ExtractionOutcome:
        """Request structured fields for a recognized text.

        Never raises for transport or parsing problems; those are reported
        as a failed outcome.

        Args:
            text: Cumulative OCR text of the document.

        Returns:
            Outcome holding the parsed fields or the error message.
        """
        payload = build_payload(text, self.config)
        status_code: int | None = None
        try:
            response = self.session.post(
                self.endpoint, json=payload, timeout=self.config.timeout
            )
            status_code = response.status_code
            logger.info(
                "Completion endpoint answered %s %s", status_code, response.reason
            )
            response.raise_for_status()
            content = response.json()["content"]
            result = json.loads(content)
        except requests.RequestException as exc:
            logger.error("Extraction request failed: %s", exc)
            return ExtractionOutcome.failure(str(exc), status_code)
        except (KeyError, TypeError, ValueError) as exc:
            logger.error("Extraction response could not be parsed: %s", exc)
            return ExtractionOutcome.failure(
                f"Unparsable completion response: {exc}", status_code
            )

        if not isinstance(result, dict):
            logger.error("Extraction result is not a JSON object: %r", result)
            return ExtractionOutcome.failure(
                f"Expected a JSON object, got {type(result).__name__}", status_code
            )

        logger.debug("Extracted fields: %s", result)
        return ExtractionOutcome.success(result, status_code)
