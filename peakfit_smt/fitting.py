""" FITTING - Peak fitting task

Description:
    fitting.py contains the code for the fit task, which finds the peaks in
    every frame of an image stack, fits each with a Gaussian and collects the
    accepted fits into one results table. Frames are independent and can be
    fitted on several worker threads; each worker hands back its frame's
    records and counts and the main thread merges them into the table.

Contains:
    function fit
    function fit_stack
    function fit_frame

Version: 0.2.1
"""

# --- Core library imports ---
import sys
import contextlib
from multiprocessing.pool import ThreadPool

# --- Local module imports ---
from . import peaks
from . import images
from .results import ResultsTable


# --- Main fitting function ---
def fit(params):
    if params.window and len(params.window) != 4:
        sys.exit(f"ERROR: window needs x,y,width,height, got {params.window}")

    # Load image stack from file specified in parameters
    image_data = images.ImageData()
    image_data.read(params.name + ".tif", params)

    table = fit_stack(image_data, params)

    # Write accepted fits
    if len(table) > 0:
        table.write(params.name + "_fits.csv")
    else:
        print("\nNo peaks accepted.")
    return table


def fit_stack(image_data, params, table=None, candidates=None, regions=None, settings=None):
    """Fit every frame of ``image_data`` into ``table``.

    ``candidates`` optionally gives one list of (x, y) peaks per frame in
    place of the built-in detector, and ``regions`` a Regions set restricting
    which peaks are fitted. With ``params.window`` set, each frame instead
    gets a single fit of that fixed window. The table's found/accepted
    counters are reset at the start of the run.
    """
    if table is None:
        table = ResultsTable()
    table.reset()

    if settings is None:
        settings = peaks.FitSettings.from_params(params)

    frame_candidates = [None] * image_data.num_frames
    if candidates is not None:
        if len(candidates) != image_data.num_frames:
            raise ValueError(f"Got candidates for {len(candidates)} frames, image has {image_data.num_frames}")
        frame_candidates = list(candidates)

    # --- SERIAL execution path ---
    if params.num_procs <= 1:
        for frame in range(image_data.num_frames):
            records, num_found, num_accepted = fit_frame(
                image_data[frame], frame, params, frame_candidates[frame], regions, settings
            )
            table.add_frame(records, num_found, num_accepted)

    # --- PARALLEL execution path ---
    else:
        res = [None] * image_data.num_frames
        with contextlib.closing(ThreadPool(processes=params.num_procs)) as pool:
            # Submit all frames for processing asynchronously
            for frame in range(image_data.num_frames):
                res[frame] = pool.apply_async(
                    fit_frame,
                    (image_data[frame], frame, params, frame_candidates[frame], regions, settings),
                )

            # Merge each frame's batch as it becomes available
            for frame in range(image_data.num_frames):
                records, num_found, num_accepted = res[frame].get()
                table.add_frame(records, num_found, num_accepted)

    # --- Run summary ---
    if params.verbose:
        print(f"\n--- Peak Fit Summary ---")
        print(f"Frames fitted:   {image_data.num_frames}")
        print(f"Peaks found:     {table.num_found}")
        print(f"Peaks accepted:  {table.num_accepted}")
        if table.num_found > 0:
            print(f"Acceptance rate: {100 * table.num_accepted / table.num_found:.1f}%")
        sys.stdout.flush()

    return table


# --- Single frame processing function (called serially or by workers) ---
def fit_frame(frame_data, frame, params, candidates=None, regions=None, settings=None):
    if settings is None:
        settings = peaks.FitSettings.from_params(params)

    # Whole-window mode: one fit of a fixed region, no detection
    if params.window:
        if len(params.window) != 4:
            raise ValueError(f"window needs x,y,width,height, got {params.window}")
        record = peaks.fit_window(frame_data.as_image(), params.window, frame_data.saturation, settings, frame)
        records = [] if record is None else [record]
        if params.verbose:
            print(f"Frame {frame:4d}: window fit {'accepted' if records else 'rejected'}")
            sys.stdout.flush()
        return records, 1, len(records)

    frame_peaks = peaks.Peaks(frame=frame)

    # 1. Candidates from the caller or the built-in detector
    if candidates is not None:
        frame_peaks.set_positions(candidates)
    else:
        frame_peaks.find_in_frame(frame_data.as_image(), params)
    num_found = frame_peaks.num_found

    # 2. Spatial filter before any fitting
    frame_peaks.filter_regions(frame_data, regions)

    # 3. Fit and accept
    num_accepted = 0
    if frame_peaks.num_peaks > 0:
        num_accepted = frame_peaks.fit_peaks(frame_data, settings)

    if params.verbose:
        print(
            f"Frame {frame:4d}: {num_found:3d} found, "
            f"{num_found - frame_peaks.num_peaks:3d} outside regions, "
            f"{num_accepted:3d} accepted"
        )
        sys.stdout.flush()

    return frame_peaks.records, num_found, num_accepted
