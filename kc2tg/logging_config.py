import logging
import sys


def setup_logging(debug: bool = False) -> None:
    """
    Configure les logs sur stdout au format "[NIVEAU] message".

    Args:
        debug: affiche aussi les messages de debug de kc2tg
    """
    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    # Niveau global INFO pour limiter le bruit des bibliothèques (urllib3)
    root_logger.setLevel(logging.INFO)
    logging.getLogger('kc2tg').setLevel(logging.DEBUG if debug else logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter('[%(levelname)s] %(message)s'))
    root_logger.addHandler(handler)
