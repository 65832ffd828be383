import logging
import os

from aiohttp import web

from sitepulse.main import create_app

logging.basicConfig(
    level=os.getenv('LOG_LEVEL', 'INFO'),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


if __name__ == '__main__':
    port = int(os.getenv('APP_PORT', 9002))
    logger.info(f'Starting sitepulse service on port {port}')
    web.run_app(create_app(), host='0.0.0.0', port=port)
