import imageio
import os
import numpy as np


def create_gif(frames, output_path, filename, duration=100, loop=0):
    """
    Creates an animated GIF from a sequence of canvas snapshots

    Frames are RGBA bitmaps; the alpha channel is dropped since the canvas is
    meant to be viewed flat. Non-uint8 frames are clipped to [0, 255]

    :param frames: List of (H x W x 4) or (H x W x 3) images
    :type frames: list[np.ndarray]
    :param output_path: Directory where the GIF will be saved
    :type output_path: str
    :param filename: Base filename for the GIF (without .gif extension)
    :type filename: str
    :param duration: Display time of each frame in milliseconds
    :type duration: int
    :param loop: Number of times the GIF should loop, 0 means infinite loop
    :type loop: int
    :return: Path of the written GIF, or None if nothing was written
    :rtype: Optional[str]
    """
    gif_path = os.path.join(output_path, f"{filename}.gif")

    processed_frames = []
    for frame in frames:
        img = frame if frame.dtype == np.uint8 else np.clip(frame, 0, 255).astype(np.uint8)
        if img.ndim == 3 and img.shape[2] == 4:
            img = img[:, :, :3]
        processed_frames.append(img)

    if not processed_frames:
        print(f"Warning: No frames provided to create GIF: {gif_path}")
        return None

    os.makedirs(output_path, exist_ok=True)
    try:
        with imageio.get_writer(gif_path, mode="I", duration=duration, loop=loop) as writer:
            for frame in processed_frames:
                writer.append_data(frame)
        print(f"GIF created: {gif_path}")
    except Exception as e:
        print(f"Error creating GIF {gif_path}: {e}")
        return None
    return gif_path
