#! /usr/bin/env python3
# -*- coding: utf-8 -*-
# vim:fenc=utf-8
#
# Copyright © 2020 Edward Higgins <ed.higgins@york.ac.uk>
#
# Distributed under terms of the MIT license.

""" IMAGES - Image access and manipulation module

Description:
    images.py contains the ImageData class for storing datasets of multiple
    frames, along with the saturation ceiling of the data and an optional cell
    mask restricting where peaks are fitted.

Contains:
    class    ImageData
    function saturation_for

Version: 0.2.0
"""

# --- Core library imports ---
import sys
import os
import numpy as np
import tifffile


# Largest valid intensity for a pixel type; float data never saturates
def saturation_for(dtype):
    dtype = np.dtype(dtype)
    if np.issubdtype(dtype, np.integer):
        return float(np.iinfo(dtype).max)
    return np.inf


# --- Class definition for managing image sequence data ---
class ImageData:
    # Initialise empty ImageData object
    def __init__(self):
        self.num_frames = -1
        self.has_mask = False
        self.pixel_data = None
        self.mask_data = None
        self.saturation = np.inf
        self.exists = False # Flag indicating if data is loaded

    # Single-frame ImageData for one index (e.g., image_data[0])
    def __getitem__(self, index):
        frame = ImageData()
        frame.initialise(1, self.frame_size, self.pixel_data.dtype)
        frame.pixel_data[0, :, :] = self.pixel_data[index, :, :]
        # Share saturation and mask with the parent stack
        frame.saturation = self.saturation
        frame.mask_data = self.mask_data
        frame.has_mask = self.has_mask
        return frame

    # Allow setting individual frames (e.g., image_data[0] = new_frame_data)
    def __setitem__(self, index, value):
        if isinstance(value, ImageData):
            self.pixel_data[index, :, :] = value.pixel_data[0, :, :]
        else:
            self.pixel_data[index, :, :] = value

    # Initialise object attributes for a given size
    def initialise(self, num_frames, frame_size, dtype=np.float64):
        self.num_frames = num_frames
        self.frame_size = frame_size # (width, height)
        self.num_pixels = frame_size[0] * frame_size[1]

        # Empty pixel and mask arrays, H, W order
        self.pixel_data = np.zeros([num_frames, frame_size[1], frame_size[0]], dtype=dtype)
        self.mask_data = np.ones([frame_size[1], frame_size[0]], dtype=int)
        self.has_mask = False
        self.saturation = saturation_for(dtype)

        self.exists = True

    # Build from an existing (frames, height, width) or (height, width) array
    @classmethod
    def from_array(cls, pixels, saturation=None):
        pixels = np.asarray(pixels)
        if pixels.ndim == 2:
            pixels = pixels[np.newaxis, :, :]
        if pixels.ndim != 3:
            raise ValueError(f"Expected a 2D frame or 3D stack, got shape {pixels.shape}")

        image = cls()
        image.initialise(pixels.shape[0], (pixels.shape[2], pixels.shape[1]), pixels.dtype)
        image.pixel_data[:, :, :] = pixels
        if saturation is not None:
            image.saturation = float(saturation)
        return image

    # Pixel grid of one frame as floats, indexed [y, x]
    def as_image(self, frame=0):
        return self.pixel_data[frame, :, :].astype(np.float64)

    # Attach a mask; non-zero pixels are inside
    def set_mask(self, mask):
        mask = np.asarray(mask)
        if mask.shape != (self.frame_size[1], self.frame_size[0]):
            raise ValueError(f"Mask shape {mask.shape} doesn't match frame size {self.frame_size}")
        self.mask_data = np.where(mask > 0, 1, 0)
        self.has_mask = True

    # Read image data (TIFF) and mask (optional) from files
    def read(self, filename, params):
        if not os.path.isfile(filename):
            sys.exit(f"Unable to find file matching '{filename}'")

        pixel_data = tifffile.imread(filename)
        if pixel_data.ndim == 2:
            pixel_data = pixel_data[np.newaxis, :, :]
        elif pixel_data.ndim != 3:
            sys.exit(f"ERROR: Expected a 2D image or 3D stack in '{filename}', got {pixel_data.ndim} dimensions")

        # Determine number of frames to use
        if params.num_frames:
            self.num_frames = min(params.num_frames, pixel_data.shape[0])
        else:
            self.num_frames = pixel_data.shape[0]

        self.frame_size = (pixel_data.shape[2], pixel_data.shape[1]) # W, H
        self.num_pixels = self.frame_size[0] * self.frame_size[1]
        self.pixel_data = pixel_data[:self.num_frames, :, :]

        # Ceiling from the file's pixel type unless overridden
        if params.saturation > 0:
            self.saturation = float(params.saturation)
        else:
            self.saturation = saturation_for(pixel_data.dtype)

        # Read and process optional cell mask
        self.has_mask = False
        self.mask_data = np.ones((self.frame_size[1], self.frame_size[0]), dtype=int)
        if params.cell_mask:
            if not os.path.isfile(params.cell_mask):
                sys.exit(f"ERROR: Mask file not found: {params.cell_mask}")
            pixel_mask = tifffile.imread(params.cell_mask)
            # Use first frame of mask if it's a stack
            if pixel_mask.ndim == 3:
                pixel_mask = pixel_mask[0, :, :]
            if pixel_mask.shape != (self.frame_size[1], self.frame_size[0]):
                sys.exit(f"ERROR: Mask dimensions {pixel_mask.shape} don't match image dimensions {(self.frame_size[1], self.frame_size[0])}")
            self.set_mask(pixel_mask)

        self.exists = True

    # Write image data to a TIFF file, keeping the pixel type
    def write(self, filename):
        tifffile.imwrite(filename, self.pixel_data, photometric="minisblack")

    # Whether the full 2r+1 window around a pixel lies inside the frame
    def window_inside(self, x, y, radius):
        return (radius <= int(x) < self.frame_size[0] - radius
                and radius <= int(y) < self.frame_size[1] - radius)

