"""
Session/Role controller.

Owns the {user, role, is_loading} triple for one caller and keeps it in step
with the account store:

- The session-change subscription is the only writer of settled state,
  except for the optimistic writes made after a successful role or profile
  update (those do not change the account session, so no event follows).
- Every write is tagged with a sequence number taken when the triggering
  event or operation started. A write older than the last applied one is
  dropped, so a slow profile fetch can never overwrite newer state.
- Operations never raise; they return an AuthResult.
"""

import itertools
import logging
import threading
from dataclasses import replace
from typing import Any, Dict, Optional

from evently.auth_service.errors import (
    OK,
    AccountCreationError,
    AuthResult,
    CredentialError,
    ProfileCreationError,
    ProfileFetchError,
    ProfileUpdateError,
    RoleUpdateError,
    SignOutError,
    ValidationError,
)
from evently.auth_service.models import (
    PROFILE_KEY,
    PROFILE_TABLE,
    ProfileDraft,
    Role,
    SessionView,
    User,
    orphan_user,
    profile_record,
    user_from_profile,
)
from evently.database.account_store import NO_ROWS, AccountStore, Session

PROFILE_EDITABLE_FIELDS = ("name", "organization_name", "bio", "profile_picture_url")


class SessionController:
    def __init__(self, store: AccountStore):
        self._store = store
        self._lock = threading.RLock()
        self._user: Optional[User] = None
        self._role: Optional[Role] = None
        self._is_loading = True
        self._sequence = itertools.count(1)
        self._applied = 0
        # The store delivers the current session right away
        self._unsubscribe = store.on_session_change(self._handle_session_change)

    # --- READ-ONLY STATE ---
    @property
    def view(self) -> SessionView:
        with self._lock:
            return SessionView(user=self._user, role=self._role, is_loading=self._is_loading)

    @property
    def user(self) -> Optional[User]:
        return self.view.user

    @property
    def role(self) -> Optional[Role]:
        return self.view.role

    @property
    def is_loading(self) -> bool:
        return self.view.is_loading

    @property
    def store(self) -> AccountStore:
        return self._store

    # --- LIFECYCLE ---
    def close(self) -> None:
        """Stop listening for session changes. Safe to call twice."""
        unsubscribe, self._unsubscribe = self._unsubscribe, None
        if unsubscribe is not None:
            unsubscribe()

    def __enter__(self) -> "SessionController":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # --- STATE WRITES ---
    def _next_sequence(self) -> int:
        with self._lock:
            return next(self._sequence)

    def _apply(self, sequence: int, user: Optional[User], role: Optional[Role]) -> bool:
        with self._lock:
            if sequence < self._applied:
                logging.info(f"[Auth] Dropping stale session write #{sequence} (last applied #{self._applied})")
                return False
            self._applied = sequence
            self._user = user
            self._role = role
            return True

    def _set_loading(self, value: bool) -> None:
        with self._lock:
            self._is_loading = value

    # --- SESSION-CHANGE HANDLER ---
    def _handle_session_change(self, session: Optional[Session]) -> None:
        sequence = self._next_sequence()
        try:
            if session is None:
                self._apply(sequence, None, None)
                return

            account = session.account
            result = self._store.select_one(PROFILE_TABLE, {PROFILE_KEY: account.account_id})

            if result.row is not None:
                user = user_from_profile(account.email, result.row)
                self._apply(sequence, user, user.role)
            elif result.error is None or result.error.code == NO_ROWS:
                logging.warning(f"[Auth] Account {account.account_id} has no profile row")
                self._apply(sequence, orphan_user(account.account_id, account.email), None)
            else:
                error = ProfileFetchError(f"Could not load your profile: {result.error.message}")
                logging.error(f"[Auth] {error.message}")
                self._apply(sequence, None, None)
        except Exception:
            logging.exception("[Auth] Session change handler failed")
            self._apply(sequence, None, None)
        finally:
            self._set_loading(False)

    def refresh(self) -> None:
        """Re-read the profile for the store's current session."""
        self._handle_session_change(self._store.current_session())

    # --- OPERATIONS ---
    def sign_in(self, email: str, password: str) -> AuthResult:
        """
        Check credentials with the store.

        On success the store's session event finishes the transition; the
        caller must not assume `user` is populated when this returns.
        """
        self._set_loading(True)
        error = self._store.authenticate(email, password)
        if error is not None:
            self._set_loading(False)
            logging.info(f"[Auth] Sign-in rejected for {email}: {error.code}")
            return AuthResult(CredentialError(error.message))
        return OK

    def sign_up(self, draft: ProfileDraft, role: Any, password: str) -> AuthResult:
        """
        Create an account and its profile row.

        If the profile insert fails the new account is signed straight back
        out, so it cannot operate without a role.
        """
        email = (draft.email or "").strip()
        if not email:
            return AuthResult(ValidationError("Email is required to sign up."))
        parsed_role = Role.parse(role)
        if parsed_role is None:
            return AuthResult(ValidationError(f"Unknown role: {role}"))
        draft = replace(draft, email=email)

        self._set_loading(True)
        created = self._store.create_account(email, password)
        if created.error is not None:
            self._set_loading(False)
            return AuthResult(AccountCreationError(created.error.message))

        account = created.account
        inserted = self._store.insert_one(PROFILE_TABLE, profile_record(account.account_id, draft, parsed_role))
        if inserted.error is not None:
            logging.error(
                f"[Auth] Profile insert failed for account {account.account_id}: "
                f"{inserted.error.message}. Signing the account out."
            )
            self._compensating_sign_out()
            self._set_loading(False)
            return AuthResult(ProfileCreationError(
                f"Your account was created but the profile could not be saved: {inserted.error.message}"
            ))

        session = self._store.current_session()
        if session is None:
            # Email confirmation pending: no session event will follow
            self._set_loading(False)
        else:
            # Either the sign-in event ran before the profile existed, or
            # confirmation is pending and the previous session is still active
            self.refresh()
        return OK

    def _compensating_sign_out(self) -> None:
        try:
            error = self._store.sign_out()
        except Exception:
            logging.exception("[Auth] Compensating sign-out failed")
            return
        if error is not None:
            logging.warning(f"[Auth] Compensating sign-out was not confirmed remotely: {error.message}")

    def select_role(self, role: Any) -> AuthResult:
        """First-time role selection for a signed-in user without a role."""
        view = self.view
        if view.user is None:
            logging.info("[Auth] Ignoring role selection without a signed-in user")
            return AuthResult(ValidationError("You must be signed in to choose a role."))
        parsed_role = Role.parse(role)
        if parsed_role is None:
            return AuthResult(ValidationError(f"Unknown role: {role}"))
        if view.role is not None:
            return AuthResult(RoleUpdateError("Your role has already been selected."))

        sequence = self._next_sequence()
        result = self._store.update_one(PROFILE_TABLE, {PROFILE_KEY: view.user.id}, {"role": parsed_role.value})
        if result.error is not None:
            return AuthResult(RoleUpdateError(f"Could not save your role: {result.error.message}"))

        self._apply(sequence, view.user.with_role(parsed_role), parsed_role)
        return OK

    def assign_role(self, account_id: str, role: Any, changes: Optional[Dict[str, Any]] = None) -> AuthResult:
        """
        Administrator override: set any user's role.

        `changes` (other profile fields) are written in the same update, so
        the role and the fields are saved together or not at all.
        """
        view = self.view
        if view.user is None or view.role is not Role.ADMIN:
            return AuthResult(RoleUpdateError("Only administrators can reassign roles."))
        parsed_role = Role.parse(role)
        if parsed_role is None:
            return AuthResult(ValidationError(f"Unknown role: {role}"))

        patch = dict(changes or {})
        patch["role"] = parsed_role.value

        sequence = self._next_sequence()
        result = self._store.update_one(PROFILE_TABLE, {PROFILE_KEY: account_id}, patch)
        if result.error is not None:
            return AuthResult(RoleUpdateError(f"Could not update role: {result.error.message}"))

        if account_id == view.user.id:
            user = user_from_profile(view.user.email, result.row)
            self._apply(sequence, user, user.role)
        return OK

    def update_profile(self, changes: Dict[str, Any]) -> AuthResult:
        """Owner edit of name / organization name / bio / picture."""
        view = self.view
        if view.user is None:
            return AuthResult(ValidationError("You must be signed in to edit your profile."))
        patch = {k: v for k, v in changes.items() if k in PROFILE_EDITABLE_FIELDS}
        if not patch:
            return AuthResult(ValidationError("No valid fields provided."))
        if "name" in patch and not patch["name"]:
            return AuthResult(ValidationError("Name cannot be empty."))

        sequence = self._next_sequence()
        result = self._store.update_one(PROFILE_TABLE, {PROFILE_KEY: view.user.id}, patch)
        if result.error is not None:
            return AuthResult(ProfileUpdateError(f"Could not update your profile: {result.error.message}"))

        user = user_from_profile(view.user.email, result.row)
        self._apply(sequence, user, user.role)
        return OK

    def logout(self) -> AuthResult:
        """
        Sign out; the resulting session event clears user and role.

        The store always drops the local session. If the remote sign-out
        failed, a SignOutError is returned after settling the local state.
        """
        self._set_loading(True)
        error = self._store.sign_out()
        if error is not None:
            logging.error(f"[Auth] Remote sign-out failed: {error.message}")
            self.refresh()
            return AuthResult(SignOutError(
                f"You were signed out on this device, but the session could not be revoked: {error.message}"
            ))
        return OK
