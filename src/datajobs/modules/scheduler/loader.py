from pathlib import Path
from typing import List, Union

import yaml
from pydantic import ValidationError

from datajobs.util import logger_util
from . import schemas
from .service import JobService

logger = logger_util.get_logger(__name__)

# Keys a seed entry may carry that are not part of the job definition itself.
_LOADER_KEYS = {'replace_existing'}


async def seed_db_from_yaml(job_service: JobService, yaml_path: Union[str, Path]) -> List[schemas.Job]:
    """
    Creates the job definitions listed in a YAML file.

    Entries with an `id` that already exists are skipped unless they set
    `replace_existing: true`, in which case the stored job is updated.
    Returns the jobs that were created or updated.
    """
    logger.info(f"Seeding database from YAML file: {yaml_path}")
    try:
        with open(yaml_path, 'r', encoding='utf-8') as f:
            job_configs = yaml.safe_load(f)
    except FileNotFoundError:
        logger.error(f"YAML file not found at {yaml_path}")
        return []

    if not job_configs:
        logger.info("YAML file is empty. No jobs to seed.")
        return []

    logger.info(f"Found {len(job_configs)} jobs in YAML file.")
    seeded = []
    for job_data in job_configs:
        try:
            job_in = schemas.JobCreate.model_validate(
                {k: v for k, v in job_data.items() if k not in _LOADER_KEYS})

            existing_job = await job_service.get_job(job_in.id) if job_in.id else None
            if existing_job:
                if job_data.get('replace_existing', False):
                    logger.info(f"Updating job from YAML: {job_in.job_name}")
                    job_update = schemas.JobUpdate(**job_in.model_dump(exclude={'id'}))
                    seeded.append(await job_service.update_job(existing_job.id, job_update))
                else:
                    logger.info(f"Skipping existing job from YAML: {job_in.job_name}")
            else:
                logger.info(f"Creating new job from YAML: {job_in.job_name}")
                seeded.append(await job_service.create_job(job_in))

        except (ValidationError, AttributeError) as e:
            name = job_data.get('job_name') if isinstance(job_data, dict) else job_data
            logger.error(f"Error processing job config from YAML: {name}. Details: {e}")

    return seeded
