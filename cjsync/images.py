from __future__ import annotations

from typing import Sequence

from .models import Container


def sync_images(
    workload_containers: Sequence[Container],
    template_containers: Sequence[Container],
) -> tuple[list[Container], bool]:
    """Compute the job template containers after following the workload's images.

    Containers are matched by name. A template container whose name the workload
    does not have takes the image of the workload's first container instead; with
    no workload containers it is left alone. Only ``image`` ever changes.

    Returns (containers, mutated). The input sequences are not modified.
    """
    image_by_name = {c.name: c.image for c in workload_containers}
    fallback = workload_containers[0].image if workload_containers else None

    out: list[Container] = []
    mutated = False
    for c in template_containers:
        if c.name in image_by_name:
            wanted = image_by_name[c.name]
        elif fallback is not None:
            wanted = fallback
        else:
            out.append(c)
            continue
        if c.image != wanted:
            c = Container(name=c.name, image=wanted)
            mutated = True
        out.append(c)
    return out, mutated
