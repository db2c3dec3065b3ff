import numpy as np

from tmplstream import Frame, Template


def test_template_keeps_private_read_only_copy() -> None:
    image = np.zeros((8, 8), dtype=np.uint8)

    template = Template(name="button", data=image)
    image[0, 0] = 255

    assert image.flags.writeable
    assert template.data[0, 0] == 0
    assert not template.data.flags.writeable
    assert (template.width, template.height) == (8, 8)


def test_frame_keeps_private_read_only_copy() -> None:
    image = np.ones((4, 6, 3), dtype=np.uint8)

    frame = Frame(data=image, width=6, height=4, timestamp=0.0, hash="h")

    assert image.flags.writeable
    assert not np.shares_memory(frame.data, image)
    assert not frame.data.flags.writeable
