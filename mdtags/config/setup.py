from cachetools import cached

import mdtags.config.suppress_warnings  # noqa: F401
from mdtags.config.logger import logging_setup


@cached(cache={})
def setup():
    """
    One-time setup of logging and library warnings. Idempotent.
    """
    mdtags.config.suppress_warnings.filter_warnings()

    logging_setup()
