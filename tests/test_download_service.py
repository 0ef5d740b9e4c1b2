from datetime import datetime, timedelta

import pytest
from sqlmodel import Session, SQLModel, create_engine, select

from app.constants import order_status
from app.models.order import Order
from app.models.plugin import Plugin
from app.models.plugin_download import DownloadEvent, PluginDownload
from app.models.user import User
from app.services import download_service
from app.services.download_service import (
    Expired,
    FileUnavailable,
    InvalidCredential,
    PaymentNotVerified,
)


@pytest.fixture
def two_connection_db(tmp_path):
    """A file database, so each Session gets its own connection."""
    engine = create_engine(f"sqlite:///{tmp_path / 'downloads.db'}")
    SQLModel.metadata.create_all(engine)

    with Session(engine) as setup:
        setup.add(User(id=1, email="buyer@example.com", full_name="Test Buyer"))
        plugin = Plugin(
            title="Reverb Pro", slug="reverb-pro", price=49.99,
            file_path="plugins/reverb_pro.zip",
        )
        setup.add(plugin)
        setup.commit()

        order = Order(
            customer_id=1,
            items=[{"plugin_id": plugin.id, "title": plugin.title, "price": plugin.price}],
            subtotal_amount=49.99,
            total_amount=49.99,
            status=order_status.PAID,
            payment_provider="stripe",
            payment_session_id="pi_two_connections",
            paid_at=datetime.utcnow(),
        )
        setup.add(order)
        setup.commit()

        credential = download_service.issue(setup, order, plugin.id, order.customer_id)
        setup.commit()
        ids = (plugin.id, credential.id, credential.secure_token)

    yield (engine, *ids)
    engine.dispose()


@pytest.fixture
def paid_order(make_plugin, make_order):
    plugin = make_plugin("Reverb Pro", 49.99, file_path="plugins/reverb_pro.zip")
    return make_order([plugin], status=order_status.PAID), plugin


def test_issue_reuses_live_credential(session, paid_order):
    order, plugin = paid_order
    now = datetime(2026, 5, 1, 12, 0)

    first = download_service.issue(session, order, plugin.id, order.customer_id, now=now)
    again = download_service.issue(
        session, order, plugin.id, order.customer_id, now=now + timedelta(hours=1)
    )

    assert first.id == again.id
    assert first.expires_at == now + timedelta(hours=24)
    assert len(first.secure_token) >= 32


def test_issue_after_expiry_mints_new_credential(session, paid_order):
    order, plugin = paid_order
    now = datetime(2026, 5, 1, 12, 0)

    first = download_service.issue(session, order, plugin.id, order.customer_id, now=now)
    later = download_service.issue(
        session, order, plugin.id, order.customer_id, now=now + timedelta(hours=25)
    )

    assert first.id != later.id
    assert first.secure_token != later.secure_token


def test_issue_requires_paid_order(session, make_plugin, make_order):
    plugin = make_plugin()
    order = make_order([plugin])

    with pytest.raises(PaymentNotVerified):
        download_service.issue(session, order, plugin.id, order.customer_id)


def test_issue_rejects_plugin_outside_order(session, paid_order, make_plugin):
    order, _ = paid_order
    other = make_plugin("Other Synth", 10.0)

    with pytest.raises(InvalidCredential):
        download_service.issue(session, order, other.id, order.customer_id)


def test_parse_secure_path():
    assert download_service.parse_secure_path("12::abc") == (12, "abc")

    for bad in ["", "12", "x::abc", "12::", "::abc"]:
        with pytest.raises(InvalidCredential):
            download_service.parse_secure_path(bad)


def test_redeem_counts_first_download_only(session, storage, paid_order):
    order, plugin = paid_order
    storage.objects[plugin.file_path] = b"zip-bytes"
    credential = download_service.issue(session, order, plugin.id, order.customer_id)
    session.commit()

    first = download_service.redeem(
        session, storage, credential.id, credential.secure_token, "1.2.3.4", "pytest"
    )
    second = download_service.redeem(
        session, storage, credential.id, credential.secure_token, "5.6.7.8", "pytest"
    )

    assert first.first_redemption is True
    assert second.first_redemption is False
    assert first.filename == "reverb_pro.zip"
    assert b"".join(first.content) == b"zip-bytes"

    session.refresh(plugin)
    session.refresh(credential)
    assert plugin.download_count == 1
    assert credential.downloaded_at is not None
    assert credential.ip_address == "1.2.3.4"

    events = session.exec(select(DownloadEvent)).all()
    assert [e.first_redemption for e in events] == [True, False]


def test_concurrent_redemptions_count_once(storage, two_connection_db):
    engine, plugin_id, download_id, token = two_connection_db
    storage.objects["plugins/reverb_pro.zip"] = b"zip-bytes"

    with Session(engine) as first, Session(engine) as second:
        # both requests load the credential before either one stamps it
        for request_session in (first, second):
            assert request_session.get(PluginDownload, download_id).downloaded_at is None

        winner = download_service.redeem(first, storage, download_id, token, "1.2.3.4", "a")
        loser = download_service.redeem(second, storage, download_id, token, "5.6.7.8", "b")

    assert winner.first_redemption is True
    assert loser.first_redemption is False

    with Session(engine) as check:
        assert check.get(Plugin, plugin_id).download_count == 1
        assert check.get(PluginDownload, download_id).ip_address == "1.2.3.4"
        events = check.exec(select(DownloadEvent)).all()
        assert sorted(e.first_redemption for e in events) == [False, True]


def test_redeem_rejects_wrong_token(session, storage, paid_order):
    order, plugin = paid_order
    credential = download_service.issue(session, order, plugin.id, order.customer_id)
    session.commit()

    with pytest.raises(InvalidCredential):
        download_service.redeem(session, storage, credential.id, "not-the-token")

    with pytest.raises(InvalidCredential):
        download_service.redeem(session, storage, credential.id + 100, credential.secure_token)


def test_redeem_after_ttl(session, storage, paid_order):
    order, plugin = paid_order
    storage.objects[plugin.file_path] = b"zip-bytes"
    issued_at = datetime(2026, 5, 1, 12, 0)
    credential = download_service.issue(
        session, order, plugin.id, order.customer_id, now=issued_at
    )
    session.commit()

    with pytest.raises(Expired):
        download_service.redeem(
            session, storage, credential.id, credential.secure_token,
            now=issued_at + timedelta(hours=25),
        )

    session.refresh(plugin)
    assert plugin.download_count == 0


def test_redeem_requires_order_still_paid(session, storage, paid_order):
    order, plugin = paid_order
    storage.objects[plugin.file_path] = b"zip-bytes"
    credential = download_service.issue(session, order, plugin.id, order.customer_id)
    order.status = order_status.CANCELLED
    session.add(order)
    session.commit()

    with pytest.raises(PaymentNotVerified):
        download_service.redeem(session, storage, credential.id, credential.secure_token)


def test_redeem_missing_file(session, storage, paid_order):
    order, plugin = paid_order
    credential = download_service.issue(session, order, plugin.id, order.customer_id)
    session.commit()

    with pytest.raises(FileUnavailable):
        download_service.redeem(session, storage, credential.id, credential.secure_token)
