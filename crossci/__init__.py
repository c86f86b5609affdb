import logging

from crossci.config import config

logging.basicConfig(
    format='%(asctime)s [%(name)s] %(levelname)s: %(message)s',
    level=logging.INFO,
)
if config.debug:
    logging.getLogger('crossci.runner').setLevel(logging.DEBUG)
    logging.getLogger('crossci.sandbox').setLevel(logging.DEBUG)
    logging.getLogger('crossci.utils').setLevel(logging.DEBUG)
