"""
Écriture des fichiers générés sur disque
"""

import logging
import os
from typing import Iterable, List

from kc2tg.models import GeneratedFile

logger = logging.getLogger(__name__)


def write_files(files: Iterable[GeneratedFile], output_dir: str) -> List[str]:
    """Écrit chaque fichier sous output_dir et retourne les chemins écrits"""
    root = os.path.realpath(output_dir)
    written = []
    for generated in files:
        target = os.path.realpath(os.path.join(root, *generated.file_path.split('/')))
        if os.path.commonpath([root, target]) != root:
            raise ValueError(f"Chemin hors du répertoire de sortie: {generated.file_path}")
        os.makedirs(os.path.dirname(target), exist_ok=True)
        with open(target, 'w', encoding='utf-8') as f:
            f.write(generated.content)
        logger.debug(f"Écrit: {target}")
        written.append(target)
    return written
