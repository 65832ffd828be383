import logging

import orjson
from aiohttp import web
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

from sitepulse.config import AnalyticsConfig, load_config
from sitepulse.domain.entities.tracking import ResolvedSession
from sitepulse.domain.exceptions import InvalidSessionError, InvalidTimeWindowError, MissingParameterError
from sitepulse.infrastructure.postgres.on_startup.run_db import build_engine, init_db_and_tables
from sitepulse.infrastructure.postgres.uow import UnitOfWork
from sitepulse.infrastructure.redis.redis_tools import RedisCache, redis_conn_context
from sitepulse.infrastructure.settings import REDIS_HOST, REDIS_IS_CLUSTER, REDIS_PASSWORD, REDIS_PORT, REDIS_USER
from sitepulse.services.event_recorder import SESSION_START, EventRecorder, validate_tracking_data
from sitepulse.services.metrics_aggregator import MetricsAggregator
from sitepulse.services.models import BatchPayload, TrackingPayload
from sitepulse.services.request_context import (
    extract_request_metadata,
    extract_session_token,
    is_no_track,
    payload_from_headers,
)
from sitepulse.services.session_resolver import SessionResolver
from sitepulse.services.time_window import now_ms, resolve_window

logger = logging.getLogger(__name__)

config_key = web.AppKey('config', AnalyticsConfig)
engine_key = web.AppKey('engine', AsyncEngine)
owns_engine_key = web.AppKey('owns_engine', bool)
cache_key = web.AppKey('cache', RedisCache)

INTERNAL_ERROR = {'error': 'Internal server error'}


async def on_startup(app: web.Application):
    try:
        await init_db_and_tables(app[engine_key])
        logger.info('Successfully setup db')
    except Exception as e:
        logger.error(f'Database initialization failed: {e}')
        raise


async def on_cleanup(app: web.Application):
    if app[owns_engine_key]:
        await app[engine_key].dispose()


async def redis_cache_ctx(app: web.Application):
    async with redis_conn_context(
        redis_host=REDIS_HOST,
        redis_port=REDIS_PORT,
        redis_user=REDIS_USER,
        redis_password=REDIS_PASSWORD,
        redis_is_cluster=REDIS_IS_CLUSTER,
    ) as redis_client:
        app[cache_key] = RedisCache(redis_client)
        yield


def _error(message: str, status: int) -> web.Response:
    return web.json_response({'error': message}, status=status)


def _session_response(resolved: ResolvedSession, config: AnalyticsConfig, **extra) -> web.Response:
    body = {'success': True, 'session_id': resolved.session_id, 'is_new_session': resolved.is_new_session}
    body.update(extra)
    response = web.json_response(body)
    response.set_cookie(
        config.cookie_name,
        resolved.session_id,
        max_age=config.cookie_max_age_seconds,
        path='/',
        httponly=True,
        secure=config.cookie_secure,
        samesite='Lax',
    )
    return response


async def track(request: web.Request) -> web.Response:
    """
    Record one tracking call.
    GET /api/analytics/track with X-Event, X-Page, ... headers
    POST /api/analytics/track with a JSON body
    """
    if is_no_track(request.headers):
        return web.json_response({'success': True})

    config = request.app[config_key]
    try:
        if request.method == 'POST':
            payload = TrackingPayload.model_validate(await request.json())
        else:
            payload = payload_from_headers(request.headers, request.query)
    except ValueError as e:
        return _error(f'Invalid tracking payload: {e}', 400)

    data = payload.to_tracking_data()
    metadata = extract_request_metadata(request.headers, request.query, request.remote)
    token = extract_session_token(request.cookies, request.headers, request.query, config.cookie_name)

    try:
        validate_tracking_data(data)
        now = now_ms()
        async with UnitOfWork(request.app[engine_key]) as uow:
            resolved = await SessionResolver(uow, config).resolve(token, metadata, timestamp=now)
            await EventRecorder(uow).track(resolved.session_id, data, timestamp=now)
            await uow.commit()
    except MissingParameterError as e:
        return _error(str(e), 400)
    except InvalidSessionError as e:
        return _error(str(e), 403)
    except Exception:
        logger.exception('Error in track handler: event=%s session=%s page=%s', data.event, token, data.page)
        return web.json_response(INTERNAL_ERROR, status=500)

    return _session_response(resolved, config)


async def track_batch(request: web.Request) -> web.Response:
    """
    Record several tracking calls of one session in order.
    POST /api/analytics/track/batch
    {"events": [{"event": "pageview", "page": "/"}, ...]}
    """
    if is_no_track(request.headers):
        return web.json_response({'success': True})

    config = request.app[config_key]
    try:
        payload = BatchPayload.model_validate(await request.json())
    except ValueError as e:
        return _error(f'Invalid batch payload: {e}', 400)

    items = [event.to_tracking_data() for event in payload.events]
    metadata = extract_request_metadata(request.headers, request.query, request.remote)
    token = extract_session_token(request.cookies, request.headers, request.query, config.cookie_name)

    try:
        if not items:
            raise MissingParameterError('events')
        for data in items:
            validate_tracking_data(data)

        async with UnitOfWork(request.app[engine_key]) as uow:
            resolver = SessionResolver(uow, config)
            if any(data.event == SESSION_START for data in items):
                resolved = await resolver.resolve(token, metadata, adopt_token=True)
            elif not token:
                raise MissingParameterError('session_id')
            elif not await uow.sessions.exists(token):
                raise InvalidSessionError(token)
            else:
                # an expired session still gets a fresh one
                resolved = await resolver.resolve(token, metadata)
            processed = await EventRecorder(uow).track_batch(resolved.session_id, items)
            await uow.commit()
    except MissingParameterError as e:
        return _error(str(e), 400)
    except InvalidSessionError as e:
        return _error(str(e), 403)
    except Exception:
        logger.exception('Error in track_batch handler: session=%s events=%s', token, len(items))
        return web.json_response(INTERNAL_ERROR, status=500)

    return _session_response(resolved, config, processed=processed)


async def metrics(request: web.Request) -> web.Response:
    """
    Dashboard metrics for a window.
    GET /api/analytics/metrics?period=7d
    GET /api/analytics/metrics?startTime=1700000000000&endTime=1700086400000
    """
    config = request.app[config_key]
    period = request.query.get('period') or request.headers.get('X-Time-Period')
    try:
        window = resolve_window(
            period,
            request.query.get('startTime'),
            request.query.get('endTime'),
            default_period=config.default_period,
        )
    except InvalidTimeWindowError as e:
        return _error(str(e), 400)

    cache = request.app.get(cache_key) if config.metrics_cache_ttl_seconds else None
    cache_name = f'metrics:{window.label}'
    if cache is not None:
        try:
            cached = await cache.get_value(cache_name)
        except (RedisError, orjson.JSONDecodeError):
            logger.warning('Metrics cache read failed for %s', cache_name, exc_info=True)
            cached = None
        if cached is not None:
            return web.json_response(cached.value)

    try:
        async with UnitOfWork(request.app[engine_key]) as uow:
            snapshot = await MetricsAggregator(uow.session, config).get_metrics(window)
    except Exception:
        logger.exception('Error in metrics handler: window=%s', window.label)
        return web.json_response(INTERNAL_ERROR, status=500)

    body = snapshot.model_dump(mode='json')
    if cache is not None:
        try:
            await cache.set_json(cache_name, body, ex=config.metrics_cache_ttl_seconds)
        except RedisError:
            logger.warning('Metrics cache write failed for %s', cache_name, exc_info=True)

    return web.json_response(body)


async def healthcheck(request: web.Request) -> web.Response:
    health_data = {'status': 'healthy', 'timestamp': now_ms(), 'service': 'sitepulse', 'database': 'ok'}
    status = 200

    try:
        async with request.app[engine_key].connect() as conn:
            await conn.execute(text('SELECT 1'))
    except Exception:
        logger.exception('Database health check failed')
        health_data['database'] = 'unavailable'
        health_data['status'] = 'unhealthy'
        status = 503

    cache = request.app.get(cache_key)
    if cache is not None:
        try:
            await cache.ping()
            health_data['redis'] = 'ok'
        except RedisError:
            logger.exception('Redis health check failed')
            health_data['redis'] = 'unavailable'
            health_data['status'] = 'unhealthy'
            status = 503

    return web.json_response(health_data, status=status)


def create_app(
    engine: AsyncEngine | None = None,
    config: AnalyticsConfig | None = None,
    use_redis: bool | None = None,
) -> web.Application:
    app = web.Application()
    app[config_key] = config or load_config()
    app[owns_engine_key] = engine is None
    app[engine_key] = engine or build_engine()

    app.on_startup.append(on_startup)
    app.on_cleanup.append(on_cleanup)
    if use_redis is None:
        use_redis = REDIS_HOST is not None
    if use_redis:
        app.cleanup_ctx.append(redis_cache_ctx)

    app.router.add_get('/health', healthcheck)
    app.router.add_get('/api/analytics/track', track)
    app.router.add_post('/api/analytics/track', track)
    app.router.add_post('/api/analytics/track/batch', track_batch)
    app.router.add_get('/api/analytics/metrics', metrics)
    return app
