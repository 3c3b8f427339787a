# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Storage for issued credentials, their status and pending credential offers
"""

import uuid
import logging
from enum import Enum
import sqlalchemy.orm as sa_orm
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import ForeignKey
from sqlalchemy import Float, Boolean, Text, Uuid, JSON, select

import common.db.postgres as db

_logger = logging.getLogger(__name__)


class CredentialStatus(Enum):
    VALID = "VALID"
    SUSPENDED = "SUSPENDED"
    REVOKED = "REVOKED"


class RevocationReason(Enum):
    FRAUD = "FRAUD"
    COMPROMISED = "COMPROMISED"
    ERROR = "ERROR"
    EXPIRED = "EXPIRED"
    USER_REQUEST = "USER_REQUEST"
    ADMIN_DECISION = "ADMIN_DECISION"


class IssuanceRecord(db.Base):
    """
    One issuance event: the credential JWT and its companion commitment JWT
    """

    __tablename__ = "issuance_record"
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    """Credential id, jti of both tokens"""
    issuer_did: Mapped[str] = mapped_column(Text, nullable=False)
    holder_did: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    credential_jwt: Mapped[str] = mapped_column(Text, nullable=False)
    commitment_jwt: Mapped[str] = mapped_column(Text, nullable=False)
    commitment_hash: Mapped[str] = mapped_column(Text, nullable=False)
    issued_at: Mapped[float] = mapped_column(Float, nullable=False)
    """Seconds since 1.1.1970"""
    status: Mapped["CredentialStatusRecord"] = sa_orm.relationship(back_populates="issuance")


class CredentialStatusRecord(db.Base):
    """
    Revocation state of an issued credential.
    Only exists once status tracking has been initialized for the credential.
    """

    __tablename__ = "credential_status"
    credential_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey(IssuanceRecord.id), primary_key=True)
    issuance: Mapped[IssuanceRecord] = sa_orm.relationship(back_populates="status")
    status: Mapped[str] = mapped_column(Text, nullable=False, default=CredentialStatus.VALID.value)
    revoked_at: Mapped[float] = mapped_column(Float, nullable=True)
    revocation_reason: Mapped[str] = mapped_column(Text, nullable=True)
    revoked_by: Mapped[str] = mapped_column(Text, nullable=True)
    """Actor of the last revocation or suspension"""
    reason_description: Mapped[str] = mapped_column(Text, nullable=True)
    updated_at: Mapped[float] = mapped_column(Float, nullable=False)


class CredentialOffer(db.Base):
    """
    Pending Credential Offers
    """

    __tablename__ = "credential_offer"
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    """ID for the Offer, doubles as pre-auth-code"""
    offer_data: Mapped[dict] = mapped_column(JSON, nullable=False)
    """Claims issued in the credential"""
    offer_expiration_timestamp: Mapped[float] = mapped_column(Float, nullable=False)
    """
    Expiration time in seconds since 1.1.1970
    Offer is not anymore valid if the curren time > expiration_time
    """
    redeemed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    """Set once the pre-authorized code has been exchanged for an access token"""
    issued_credential_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=True)
    """Set once the credential of the offer has been issued"""

    def validity_check(self, now: float) -> bool:
        """
        returns true if the offer can still be redeemed.
        Expired offers lose their data.
        """
        if self.redeemed:
            return False
        if self.offer_expiration_timestamp > now:
            return True
        self.remove_offer_data()
        return False

    def remove_offer_data(self) -> None:
        """Replaces the offer data with an empty dictionary"""
        self.offer_data = {}


def add_issuance(session: sa_orm.Session, record: IssuanceRecord) -> IssuanceRecord:
    session.add(record)
    session.flush()
    return record


def get_issuance(session: sa_orm.Session, credential_id: uuid.UUID) -> IssuanceRecord | None:
    return session.get(IssuanceRecord, credential_id)


def get_status_record(session: sa_orm.Session, credential_id: uuid.UUID, for_update: bool = False) -> CredentialStatusRecord | None:
    """for_update locks the row until the transaction ends (postgres). Always reloads the row."""
    return session.get(CredentialStatusRecord, credential_id, with_for_update=for_update, populate_existing=True)


def register_offer(session: sa_orm.Session, offer_data: dict, offer_expiration_timestamp: float) -> uuid.UUID:
    """
    Registers an offer to be consumed using openid4vc. Returns the pre-authorized code.
    """
    offer_id = uuid.uuid4()
    session.add(
        CredentialOffer(
            id=offer_id,
            offer_data=offer_data,
            offer_expiration_timestamp=offer_expiration_timestamp,
            redeemed=False,
        )
    )
    session.flush()
    return offer_id


def get_offer(session: sa_orm.Session, offer_id: uuid.UUID, for_update: bool = False) -> CredentialOffer | None:
    """
    for_update locks the row until the transaction ends (postgres), so redeeming an offer
    and issuing its credential happen at most once. Always reloads the row.
    """
    return session.get(CredentialOffer, offer_id, with_for_update=for_update, populate_existing=True)


def get_revoked_status_records(session: sa_orm.Session, revoked_after: float | None = None, revoked_by: str | None = None) -> list[CredentialStatusRecord]:
    """Revoked credentials, oldest revocation first"""
    statement = select(CredentialStatusRecord).where(CredentialStatusRecord.status == CredentialStatus.REVOKED.value)
    if revoked_after is not None:
        statement = statement.where(CredentialStatusRecord.revoked_at > revoked_after)
    if revoked_by is not None:
        statement = statement.where(CredentialStatusRecord.revoked_by == revoked_by)
    return list(session.scalars(statement.order_by(CredentialStatusRecord.revoked_at)).all())


def get_new_expired_offers(session: sa_orm.Session, now: float) -> list[CredentialOffer]:
    """Expired offers still holding their data"""
    statement = select(CredentialOffer).where(
        CredentialOffer.offer_expiration_timestamp <= now,
        CredentialOffer.redeemed.is_(False),
    )
    return [offer for offer in session.scalars(statement).all() if offer.offer_data]
