"""
Unit tests for token issuance, verification and rotation.
"""
import asyncio

import pytest
from jose import jwt

from tollgate.auth import RevocationReason, TokenType
from tollgate.core.security import fingerprint
from tollgate.db.exceptions import StorageError, StorageTimeout
from tollgate.errors import TokenExpired, TokenInvalid, TokenRevoked


@pytest.fixture
def tokens(services):
    return services.tokens


class TestIssueAndVerify:
    """Test cases for TokenService.issue and verify_access."""

    async def test_issue_binds_user_session_and_type(self, tokens, clock):
        pair = tokens.issue(7, "session-1")
        identity = await tokens.verify_access(pair.access_token)

        assert identity.user_id == 7
        assert identity.session_id == "session-1"
        assert identity.token_type is TokenType.ACCESS
        assert identity.fingerprint == fingerprint(pair.access_token)
        assert pair.access_expires_at == clock.now.replace(microsecond=0) + tokens.access_ttl
        assert pair.expires_in == 15 * 60

    def test_tokens_are_unique(self, tokens):
        first, second = tokens.issue(7, "s"), tokens.issue(7, "s")
        assert first.access_token != second.access_token
        assert first.refresh_token != second.refresh_token

    async def test_refresh_token_is_not_an_access_token(self, tokens):
        pair = tokens.issue(7, "s")
        with pytest.raises(TokenInvalid):
            await tokens.verify_access(pair.refresh_token)
        with pytest.raises(TokenInvalid):
            await tokens.verify_refresh(pair.access_token)

    async def test_bad_signature(self, tokens):
        forged = jwt.encode(
            {"user_id": 7, "sid": "s", "type": "access", "exp": 2_000_000_000},
            "another-secret-that-is-long-enough-too",
            algorithm="HS256",
        )
        with pytest.raises(TokenInvalid):
            await tokens.verify_access(forged)
        with pytest.raises(TokenInvalid):
            await tokens.verify_access("not-a-jwt")

    async def test_missing_claims(self, tokens, settings):
        token = jwt.encode({"type": "access", "exp": 2_000_000_000}, settings.JWT_SECRET, algorithm="HS256")
        with pytest.raises(TokenInvalid):
            await tokens.verify_access(token)

    async def test_expired(self, tokens, clock):
        pair = tokens.issue(7, "s")
        clock.advance(minutes=15)
        with pytest.raises(TokenExpired):
            await tokens.verify_access(pair.access_token)

    async def test_blacklist_is_checked_before_expiry(self, tokens, clock):
        pair = tokens.issue(7, "s")
        await tokens.revoke(pair.access_token)
        clock.advance(days=1)
        with pytest.raises(TokenRevoked):
            await tokens.verify_access(pair.access_token)

    async def test_blacklist_failure_fails_closed(self, tokens, monkeypatch):
        pair = tokens.issue(7, "s")

        async def broken(fp):
            raise StorageError("down")

        monkeypatch.setattr(tokens.blacklist, "contains", broken)
        with pytest.raises(TokenInvalid):
            await tokens.verify_access(pair.access_token)


class TestRotate:
    """Test cases for refresh token rotation."""

    async def test_rotation_is_single_use(self, tokens):
        pair = tokens.issue(7, "s")
        new_pair, old = await tokens.rotate(pair.refresh_token)

        assert old.fingerprint == fingerprint(pair.refresh_token)
        identity = await tokens.verify_refresh(new_pair.refresh_token)
        assert identity.session_id == "s"

        with pytest.raises(TokenRevoked):
            await tokens.rotate(pair.refresh_token)

    async def test_rotated_token_is_recorded_as_rotation(self, tokens):
        pair = tokens.issue(7, "s")
        await tokens.rotate(pair.refresh_token)
        entry = await tokens.blacklist.get(fingerprint(pair.refresh_token))
        assert entry.reason == RevocationReason.ROTATION.value
        assert entry.user_id == 7

    async def test_concurrent_rotation_issues_one_pair(self, tokens):
        pair = tokens.issue(7, "s")
        results = await asyncio.gather(
            *(tokens.rotate(pair.refresh_token) for _ in range(8)), return_exceptions=True
        )
        succeeded = [r for r in results if not isinstance(r, BaseException)]
        failed = [r for r in results if isinstance(r, BaseException)]

        assert len(succeeded) == 1
        assert all(isinstance(e, TokenRevoked) for e in failed)

    async def test_rotation_aborts_when_blacklist_insert_fails(self, tokens, monkeypatch):
        pair = tokens.issue(7, "s")
        calls = []

        async def broken(*args, **kwargs):
            calls.append(args)
            raise StorageError("down")

        monkeypatch.setattr(tokens.blacklist, "add", broken)
        with pytest.raises(TokenInvalid):
            await tokens.rotate(pair.refresh_token)
        assert len(calls) == 4

    async def test_late_commit_after_timeout_is_not_a_replay(self, tokens, monkeypatch):
        pair = tokens.issue(7, "s")
        real_add = tokens.blacklist.add
        calls = []

        async def commits_then_times_out(*args, **kwargs):
            calls.append(args)
            result = await real_add(*args, **kwargs)
            if len(calls) == 1:
                raise StorageTimeout("blacklist.add timed out")
            return result

        monkeypatch.setattr(tokens.blacklist, "add", commits_then_times_out)
        with pytest.raises(TokenInvalid):
            await tokens.rotate(pair.refresh_token)
        assert len(calls) == 2

        with pytest.raises(TokenRevoked):
            await tokens.rotate(pair.refresh_token)

    async def test_revocation_found_after_retry_is_still_revoked(self, tokens, monkeypatch):
        pair = tokens.issue(7, "s")
        identity = await tokens.verify_refresh(pair.refresh_token)
        real_add = tokens.blacklist.add
        calls = []

        async def logout_lands_during_timeout(*args, **kwargs):
            calls.append(args)
            if len(calls) == 1:
                await real_add(
                    identity.fingerprint, identity.user_id, identity.expires_at, RevocationReason.LOGOUT
                )
                raise StorageTimeout("blacklist.add timed out")
            return await real_add(*args, **kwargs)

        monkeypatch.setattr(tokens.blacklist, "add", logout_lands_during_timeout)
        with pytest.raises(TokenRevoked):
            await tokens.rotate(pair.refresh_token)

    async def test_expired_refresh_token(self, tokens, clock):
        pair = tokens.issue(7, "s")
        clock.advance(days=8)
        with pytest.raises(TokenExpired):
            await tokens.rotate(pair.refresh_token)


class TestRevoke:
    """Test cases for explicit revocation."""

    async def test_revoke_is_idempotent(self, tokens, clock):
        pair = tokens.issue(7, "s")
        await tokens.revoke(pair.refresh_token)
        entry = await tokens.blacklist.get(fingerprint(pair.refresh_token))

        clock.advance(minutes=5)
        await tokens.revoke(pair.refresh_token, RevocationReason.ADMIN_REVOKE)
        again = await tokens.blacklist.get(fingerprint(pair.refresh_token))

        assert again.revoked_at == entry.revoked_at
        assert again.reason == RevocationReason.LOGOUT.value

    async def test_revoke_checks_signature(self, tokens):
        with pytest.raises(TokenInvalid):
            await tokens.revoke("garbage")

    async def test_revoked_refresh_token_cannot_rotate(self, tokens):
        pair = tokens.issue(7, "s")
        await tokens.revoke(pair.refresh_token, token_type=TokenType.REFRESH)
        with pytest.raises(TokenRevoked):
            await tokens.rotate(pair.refresh_token)
