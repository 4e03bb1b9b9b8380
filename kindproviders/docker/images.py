"""Making sure node images are present in the local docker image store."""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable

from ..command import RunError, command

logger = logging.getLogger(__name__)

_DIGEST_MARKER = "@sha256:"


def ensure_node_images(images: Iterable[str]) -> None:
    """Pull every distinct image that is not already present, in sorted order."""
    for image in sorted(set(images)):
        friendly, pullable = sanitize_image(image)
        logger.info("Ensuring node image (%s) 🖼", friendly)
        pull_if_not_present(pullable, 4)


def pull_if_not_present(image: str, retries: int) -> bool:
    """Pull image unless it is present locally; return whether a pull was made."""
    try:
        command("docker", "inspect", "--type=image", image).run()
    except RunError:
        pull(image, retries)
        return True
    logger.debug("Image: %s present locally", image)
    return False


def pull(image: str, retries: int) -> None:
    """Pull image, retrying up to retries more times with growing pauses."""
    logger.debug("Pulling image: %s ...", image)
    try:
        command("docker", "pull", image).run()
        return
    except RunError as exc:
        err = exc
    for attempt in range(retries):
        time.sleep(attempt + 1)
        logger.debug('Trying again to pull image: "%s" ... %s', image, err)
        try:
            command("docker", "pull", image).run()
            return
        except RunError as exc:
            err = exc
    raise RuntimeError(f'failed to pull image "{image}"') from err


def sanitize_image(image: str) -> tuple[str, str]:
    """Return a human readable image name and the pullable image reference."""
    if _DIGEST_MARKER in image:
        return image.split(_DIGEST_MARKER)[0], image
    return image, image