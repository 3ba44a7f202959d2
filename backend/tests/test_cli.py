"""
CLI command tests (flask system / flask stock).
"""

from dealer.models import Customer, StockItem, User


def test_seed_is_idempotent(app, db_session):
    runner = app.test_cli_runner()

    first = runner.invoke(args=["system", "seed"])
    assert first.exit_code == 0
    assert "Created seller" in first.output

    second = runner.invoke(args=["system", "seed"])
    assert second.exit_code == 0
    assert "Using existing seller" in second.output

    assert db_session.query(User).filter_by(email="seller@dealer.local").count() == 1
    assert db_session.query(Customer).filter_by(document="00000000000").count() == 1


def test_init_db(app, db_session):
    result = app.test_cli_runner().invoke(args=["system", "init-db"])

    assert result.exit_code == 0
    assert "Database initialized" in result.output


def test_reset_db_requires_confirmation(app, db_session, make_stock_item):
    make_stock_item()

    result = app.test_cli_runner().invoke(args=["system", "reset-db"], input="n\n")

    assert result.exit_code != 0
    assert db_session.query(StockItem).count() == 1


def test_storage_report(app, db_session, make_stock_item):
    make_stock_item(media_blobs=["A" * 400])

    result = app.test_cli_runner().invoke(args=["stock", "storage"])

    assert result.exit_code == 0
    assert "Used:" in result.output
    assert "Available:" in result.output


def test_recompute_sizes(app, db_session):
    db_session.add(
        StockItem(brand="Fiat", model="Uno", year=2010, media_blobs=["A" * 400], total_encoded_bytes=1)
    )
    db_session.commit()

    result = app.test_cli_runner().invoke(args=["stock", "recompute-sizes"])

    assert result.exit_code == 0
    assert "1 stock item(s) updated; 300 bytes in use." in result.output
    db_session.expire_all()
    assert db_session.query(StockItem).one().total_encoded_bytes == 300
