"""
Oracle ingress.

Oracles post prices as Ed25519-signed messages. The ingress authenticates
the post, derives the source address from the signing key, and hands the
tuple to the submission store, which applies the market rules.

Signed surface (locked):
    bytes_signed = canonicalize(post.to_signing_dict())
    to_signing_dict() = every field except signature
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional, Union

from usdm.core.canonical import canonicalize
from usdm.core.crypto import Ed25519KeyManager, address_from_public_key
from usdm.core.exceptions import (
    InvalidExpiryError,
    InvalidPriceError,
    InvalidSourceError,
)
from usdm.core.fixedpoint import Dec
from usdm.core.models import PriceSubmission
from usdm.core.time import format_block_time, to_block_time
from usdm.pricefeed.store import PriceSubmissionStore


@dataclass
class SignedPricePost:
    """A price assertion signed by an oracle key."""

    market_id:         str
    price:             str
    expiry:            str
    signer_public_key: str
    signature:         Optional[str] = None

    @classmethod
    def create(
        cls,
        market_id: str,
        price:     Union[Dec, str],
        expiry:    Union[datetime, str],
        key:       Ed25519KeyManager,
    ) -> "SignedPricePost":
        """Build and sign a post in one step."""
        post = cls(
            market_id=         market_id,
            price=             str(Dec.coerce(price)),
            expiry=            format_block_time(to_block_time(expiry)),
            signer_public_key= key.public_key_hex,
        )
        post.signature = key.sign(post.canonical_bytes_for_signing())
        return post

    def to_signing_dict(self) -> Dict[str, Any]:
        return {
            "expiry":            self.expiry,
            "market_id":         self.market_id,
            "price":             self.price,
            "signer_public_key": self.signer_public_key,
        }

    def to_dict(self) -> Dict[str, Any]:
        d = self.to_signing_dict()
        d["signature"] = self.signature
        return d

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SignedPricePost":
        return cls(
            market_id=         data["market_id"],
            price=             data["price"],
            expiry=            data["expiry"],
            signer_public_key= data["signer_public_key"],
            signature=         data.get("signature"),
        )

    def canonical_bytes_for_signing(self) -> bytes:
        return canonicalize(self.to_signing_dict())

    def verify_signature(self) -> bool:
        return Ed25519KeyManager.verify_detached(
            self.canonical_bytes_for_signing(),
            self.signature,
            self.signer_public_key,
        )

    @property
    def source(self) -> str:
        return address_from_public_key(self.signer_public_key)


class OracleIngress:
    """Authenticates signed posts and forwards them to the store."""

    def __init__(self, store: PriceSubmissionStore):
        self.store = store

    def accept(self, post: SignedPricePost, now: datetime) -> PriceSubmission:
        """
        Verify and store one post.

        Raises:
            InvalidSourceError — unsigned, tampered or wrongly-keyed post
            InvalidPriceError  — price field is not a decimal string
            plus everything PriceSubmissionStore.submit() raises
        """
        if not post.verify_signature():
            raise InvalidSourceError(
                "price post signature is invalid",
                {"market_id": post.market_id},
            )

        try:
            price = Dec.from_str(post.price)
        except (TypeError, ValueError) as exc:
            raise InvalidPriceError(
                "price is not a decimal string",
                {"price": post.price},
            ) from exc

        try:
            expiry = to_block_time(post.expiry)
        except (TypeError, ValueError) as exc:
            raise InvalidExpiryError(
                "expiry is not a block timestamp",
                {"expiry": post.expiry},
            ) from exc

        return self.store.submit(
            market_id= post.market_id,
            source=    post.source,
            price=     price,
            expiry=    expiry,
            now=       now,
        )
