from unittest.mock import AsyncMock, MagicMock

import pytest

from datajobs import main


@pytest.mark.asyncio
async def test_lifespan_starts_and_stops_scheduler(monkeypatch, fake_job_service, executors, make_job):
    monkeypatch.setattr(main.database, "init_db", MagicMock())
    monkeypatch.setattr(main.database, "create_tables", MagicMock())
    monkeypatch.setattr(main.database, "dispose_db", MagicMock())
    seed = AsyncMock(return_value=[])
    monkeypatch.setattr(main.loader, "seed_db_from_yaml", seed)
    fake_job_service.add_job(make_job(schedule_config={"schedule_type": "interval", "interval_seconds": 60}))

    services = main.create_services(job_service=fake_job_service, query_executors=executors)

    async with main.lifespan(services) as running:
        assert running is services
        assert running.scheduler.running is True
        assert running.scheduler.get_scheduled_job_count() == 1
        assert running.runner.query_executors == executors

    assert services.scheduler.running is False
    assert services.scheduler.get_scheduled_job_count() == 0
    main.database.init_db.assert_called_once()
    main.database.create_tables.assert_called_once()
    main.database.dispose_db.assert_called_once()
    if main.config.seed_file:
        seed.assert_awaited_once_with(fake_job_service, main.config.seed_file)
