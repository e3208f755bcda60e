"""
Tests for POP3 authentication mechanisms
"""
import base64

import pytest

from popkit.pop3 import AuthMechanism, SessionState
from popkit.utils.errors import ArgumentError, AuthError, ConfigError

from .test_helpers import Pop3TestHelper


def b64(text):
    return base64.b64encode(text.encode()).decode("ascii")


class TestPlainMechanism:
    """USER / PASS authentication"""

    @pytest.mark.asyncio
    async def test_success_enters_transaction(self):
        session, transport = await Pop3TestHelper.connected_session(
            "+OK mrose is a real hoopy frood", "+OK mrose's maildrop has 2 messages"
        )

        assert await session.authenticate("mrose", "tanstaaf") is True

        assert transport.sent == ["USER mrose", "PASS tanstaaf"]
        assert session.state == SessionState.TRANSACTION

    @pytest.mark.asyncio
    async def test_rejected_username(self):
        session, transport = await Pop3TestHelper.connected_session(
            "-ERR sorry, no mailbox for frated here"
        )

        with pytest.raises(AuthError) as exc_info:
            await session.authenticate("frated", "secret")

        assert exc_info.value.details["reason"] == "invalid username"
        assert transport.sent == ["USER frated"]
        assert session.state == SessionState.AUTHORIZATION

    @pytest.mark.asyncio
    async def test_rejected_password(self):
        session, transport = await Pop3TestHelper.connected_session(
            "+OK", "-ERR invalid password"
        )

        with pytest.raises(AuthError) as exc_info:
            await session.authenticate("mrose", "wrong")

        assert exc_info.value.details["reason"] == "invalid password"
        assert session.state == SessionState.AUTHORIZATION

    @pytest.mark.asyncio
    async def test_credentials_not_kept_on_session(self):
        session, _ = await Pop3TestHelper.connected_session("+OK", "+OK")

        await session.authenticate("mrose", "tanstaaf")

        assert "tanstaaf" not in repr(vars(session))

    @pytest.mark.asyncio
    async def test_mechanism_string_is_case_insensitive(self):
        session, transport = await Pop3TestHelper.connected_session("+OK", "+OK")

        await session.authenticate("mrose", "tanstaaf", "PLAIN")

        assert transport.sent[0] == "USER mrose"

    @pytest.mark.asyncio
    async def test_configured_mechanism_is_default(self):
        session, transport = await Pop3TestHelper.connected_session(
            "+ ", "+ ", "+OK", auth_mechanism="login"
        )

        await session.authenticate("mrose", "tanstaaf")

        assert transport.sent[0] == "AUTH LOGIN"


class TestLoginMechanism:
    """AUTH LOGIN authentication"""

    @pytest.mark.asyncio
    async def test_success_sends_base64_credentials(self):
        session, transport = await Pop3TestHelper.connected_session(
            "+ VXNlcm5hbWU6", "+ UGFzc3dvcmQ6", "+OK logged in"
        )

        await session.authenticate("mrose", "tanstaaf", AuthMechanism.LOGIN)

        assert transport.sent == ["AUTH LOGIN", b64("mrose"), b64("tanstaaf")]
        assert session.state == SessionState.TRANSACTION

    @pytest.mark.asyncio
    async def test_mechanism_rejected(self):
        session, transport = await Pop3TestHelper.connected_session(
            "-ERR unrecognized authentication type"
        )

        with pytest.raises(AuthError):
            await session.authenticate("mrose", "tanstaaf", "login")

        assert transport.sent == ["AUTH LOGIN"]
        assert session.state == SessionState.AUTHORIZATION

    @pytest.mark.asyncio
    async def test_positive_status_is_not_a_continuation(self):
        session, transport = await Pop3TestHelper.connected_session("+OK")

        with pytest.raises(AuthError):
            await session.authenticate("mrose", "tanstaaf", "login")

        assert transport.sent == ["AUTH LOGIN"]

    @pytest.mark.asyncio
    async def test_rejected_username(self):
        session, transport = await Pop3TestHelper.connected_session(
            "+ VXNlcm5hbWU6", "-ERR unknown user"
        )

        with pytest.raises(AuthError) as exc_info:
            await session.authenticate("mrose", "tanstaaf", "login")

        assert exc_info.value.details["reason"] == "invalid username"
        assert len(transport.sent) == 2

    @pytest.mark.asyncio
    async def test_rejected_password(self):
        session, _ = await Pop3TestHelper.connected_session(
            "+ VXNlcm5hbWU6", "+ UGFzc3dvcmQ6", "-ERR authentication failed"
        )

        with pytest.raises(AuthError) as exc_info:
            await session.authenticate("mrose", "wrong", "login")

        assert exc_info.value.details["reason"] == "invalid password"
        assert session.state == SessionState.AUTHORIZATION


class TestMechanismValidation:
    """Invalid mechanisms and arguments fail before anything is sent"""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("mechanism", ["bogus", "cram-md5", "", 42])
    async def test_unknown_mechanism_is_config_error(self, mechanism):
        session, transport = await Pop3TestHelper.connected_session()

        with pytest.raises(ConfigError):
            await session.authenticate("mrose", "tanstaaf", mechanism)

        assert transport.sent == []
        assert session.state == SessionState.AUTHORIZATION

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "username,password",
        [(None, "secret"), ("mrose", None), ("", "secret"), ("mrose\r\nDELE 1", "x")],
    )
    async def test_missing_or_unsafe_credentials(self, username, password):
        session, transport = await Pop3TestHelper.connected_session()

        with pytest.raises(ArgumentError):
            await session.authenticate(username, password)

        assert transport.sent == []
