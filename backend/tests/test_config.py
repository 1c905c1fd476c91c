"""Test store time bounds in the production configuration."""
from config.production import ProductionConfig, store_engine_options


def test_postgres_statements_are_time_bounded():
    options = store_engine_options('postgresql://attend:pw@db/attendkaro', pool_timeout=7,
                                   statement_timeout_ms=3000)

    assert options['pool_pre_ping'] is True
    assert options['pool_timeout'] == 7
    assert options['connect_args'] == {
        'connect_timeout': 7,
        'options': '-c statement_timeout=3000',
    }


def test_non_postgres_store_has_no_server_timeout():
    options = store_engine_options('sqlite:////var/lib/attendkaro/app.db')

    assert options['pool_timeout'] == 10
    assert 'connect_args' not in options


def test_missing_database_url():
    assert 'connect_args' not in store_engine_options(None)


def test_production_bounds_pool_waits():
    assert ProductionConfig.SQLALCHEMY_ENGINE_OPTIONS['pool_timeout'] > 0
    assert ProductionConfig.SQLALCHEMY_ENGINE_OPTIONS['pool_pre_ping'] is True
