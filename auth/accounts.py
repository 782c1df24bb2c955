"""
auth/accounts.py -- Account service: the caller-side orchestration of the core.

Registration, login, verification and resend as the request layer and the
CLI see them. This is where caller policy lives:

  - minimum password length (8 characters; no other strength policy)
  - dispatching raw verification tokens to the notifier
  - collapsing every login failure into one AuthenticationFailure [C1]

Login timing equalization [C1]:
  An unknown email still pays for one full password verification
  (PasswordHasher.dummy_verify), so response time does not reveal whether an
  account exists. The password is checked BEFORE the verified/active flags
  for the same reason -- every refusal costs one derivation.

Notifier failures are logged, not raised. The account/token state is already
committed at that point and the user can ask for a resend; the resend
response must not differ between "sent" and "not sent".
"""

from __future__ import annotations

import logging

from auth.errors import AuthenticationFailure, InvalidInput
from auth.interfaces import CredentialStore
from auth.models import Account, IssuedToken, Registration, Verification
from auth.notify import VerificationNotifier
from auth.passwords import PasswordHasher
from auth.tokens import TokenIssuer
from auth.verification import VerificationTokenManager, normalize_email

logger = logging.getLogger("agbilling.auth.accounts")

MIN_PASSWORD_LENGTH = 8


class AccountService:
    """Usage:
    service = AccountService(store, PasswordHasher(), issuer, notifier)
    registration = service.register("alice@example.com", "Secret123!")
    service.verify_email(registration.account.uuid, raw_token)
    issued = service.login("alice@example.com", "Secret123!")
    """

    def __init__(
        self,
        store: CredentialStore,
        hasher: PasswordHasher,
        issuer: TokenIssuer,
        notifier: VerificationNotifier,
        manager: VerificationTokenManager | None = None,
    ) -> None:
        self.store = store
        self.hasher = hasher
        self.issuer = issuer
        self.notifier = notifier
        self.manager = manager or VerificationTokenManager(store)

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def email_available(self, email: str) -> bool:
        return not self.store.email_exists(normalize_email(email))

    def register(self, email: str, password: str) -> Registration:
        """Create a pending account and dispatch its verification token.

        Raises InvalidInput for a blank email or a password shorter than
        MIN_PASSWORD_LENGTH. A taken email comes back as
        Registration(error=EMAIL_ALREADY_EXISTS).
        """
        normalized = normalize_email(email)
        if not password or len(password) < MIN_PASSWORD_LENGTH:
            raise InvalidInput(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")
        hashed = self.hasher.hash(password)
        registration = self.manager.create_account_with_token(
            normalized, hashed.hash, hashed.salt, hashed.algorithm_id
        )
        if registration.ok:
            self._dispatch(normalized, registration.account.uuid, registration.raw_token, registration.expires_at)
        return registration

    # ------------------------------------------------------------------
    # Login
    # ------------------------------------------------------------------

    def authenticate(self, email: str, password: str) -> Account:
        """Return the account for valid credentials; raise AuthenticationFailure otherwise.

        UnsupportedAlgorithm from the hasher propagates: a stored hash this
        build cannot evaluate is a server fault, not a bad password.
        """
        try:
            normalized = normalize_email(email)
        except InvalidInput:
            self.hasher.dummy_verify(password)
            raise AuthenticationFailure() from None
        account = self.store.get_credentials_by_email(normalized)
        if account is None:
            # Equalize timing -- do NOT return early before hashing [C1]
            self.hasher.dummy_verify(password)
            raise AuthenticationFailure()
        valid = self.hasher.verify(password, account.password_hash, account.password_salt, account.password_algorithm)
        if not valid or not account.verified_email or not account.active:
            logger.info("Login refused for account %s", account.uuid)
            raise AuthenticationFailure()
        return account

    def login(self, email: str, password: str) -> tuple[Account, IssuedToken]:
        account = self.authenticate(email, password)
        issued = self.issuer.issue(account)
        logger.info("Bearer token issued for account %s", account.uuid)
        return account, issued

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    def verify_email(self, account_uuid: str, raw_token: str) -> Verification:
        return self.manager.consume(account_uuid, raw_token)

    def resend_verification(self, email: str) -> bool:
        """Reissue and dispatch a token if the account is pending.

        Returns True when a token was sent, False for the no-op. The request
        layer must NOT expose this value -- it exists for logs and tests.
        """
        reissue = self.manager.reissue(email)
        if reissue is None:
            return False
        return self._dispatch(reissue.email, reissue.account_uuid, reissue.raw_token, reissue.expires_at)

    def _dispatch(self, email, account_uuid, raw_token, expires_at) -> bool:
        try:
            self.notifier.send_verification(email, account_uuid, raw_token, expires_at)
        except Exception:
            logger.exception("Token stored but notification failed for account %s", account_uuid)
            return False
        return True
