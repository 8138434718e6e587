#!/usr/bin/env python3
"""
Walkaround - Record walks and the places they pass through

Usage:
    python -m walkaround [options]

Options:
    --record-trace FILE  Save the raw GPS trace to JSON while recording
    --playback FILE      Record from a GPS trace JSON file instead of GPS
    --speed FACTOR       Playback speed multiplier (default: 1.0)
    --duration SECONDS   Stop recording automatically after this long
    --list               List recorded sections and exit
    --show ID            Show the addresses passed in a section and exit
    --rebuild ID         Re-derive a section's addresses from its track and exit
    --delete ID          Delete a section and its track and exit
    --map ID             Write an HTML map of a section (see --output) and exit
    --set KEY=VALUE      Change a setting and exit
    --db PATH            Database path (default: walkaround.db)
    --log FILE           Log file path (default: walkaround_TIMESTAMP.log)
"""

import argparse
import json
import os
import sys
import time
from datetime import datetime
from pathlib import Path

from .address import AddressResolver
from .config import CONFIG, Settings
from .geocode import NominatimGeocoder
from .logger import Logger
from .replay import SectionReplaySegmenter
from .section_map import create_section_map
from .sections import SectionProcessor
from .sensors import (
    LocationRecorder,
    PlaybackLocationSource,
    TermuxLocationSource,
    TermuxStepSource,
)
from .store import TrackStore
from .tracker import SessionTracker


def _format_time(timestamp) -> str:
    if timestamp is None:
        return "-"
    return datetime.fromtimestamp(timestamp).strftime("%Y-%m-%d %H:%M")


def _parse_setting(text: str):
    """Split KEY=VALUE, decoding VALUE as JSON when possible"""
    key, sep, raw = text.partition("=")
    if not sep or not key:
        raise ValueError(f"expected KEY=VALUE, got {text!r}")
    try:
        value = json.loads(raw)
    except ValueError:
        value = raw
    return key.strip(), value


def _list_sections(processor: SectionProcessor):
    summaries = processor.section_summaries()
    if not summaries:
        print("No sections recorded yet.")
        return
    print(f"{'ID':>5}  {'Started':<16}  {'Steps':>6}  {'Points':>6}  {'Distance':>9}")
    for s in summaries:
        distance = f"{s.distance_meters:.0f}m" if s.distance_meters else "-"
        print(f"{s.section_id:>5}  {_format_time(s.start_time):<16}  {s.steps:>6}  "
              f"{s.track_point_count:>6}  {distance:>9}")
    print(f"\nSteps today: {processor.today_total_steps()}")


def _show_section(processor: SectionProcessor, section_id: int) -> bool:
    group = next((g for g in processor.section_groups() if g.section_id == section_id), None)
    if group is None:
        print(f"Section {section_id} not found")
        return False
    distance = f"{group.distance_meters:.0f}m" if group.distance_meters else "-"
    print(f"Section {group.section_id} - {_format_time(group.created_at)}"
          f" - {distance}, {group.steps} steps")
    for record in group.breakpoints:
        label = record.city_display_with_feature() or record.address_display() or "(unknown)"
        print(f"  {datetime.fromtimestamp(record.timestamp).strftime('%H:%M:%S')}  {label}")
    return True


def _write_map(store: TrackStore, processor: SectionProcessor, section_id: int,
               output: str) -> bool:
    section = store.get_section(section_id)
    if section is None:
        print(f"Section {section_id} not found")
        return False
    track = processor.prepare_track(section)
    # prepare_track may have filled in the distance
    section = store.get_section(section_id)
    m = create_section_map(section, track, store.get_breakpoints_for_section(section_id))
    if m is None:
        print(f"Section {section_id} has no accurate track points")
        return False
    m.save(output)
    print(f"Section map saved to: {os.path.abspath(output)}")
    return True


def _record(tracker: SessionTracker, duration: float = None):
    """Record until Ctrl+C, the duration elapses or playback runs out"""
    source = tracker.location_source
    print("Recording. Press Ctrl+C to stop")
    if not tracker.capabilities["location"]:
        print("Warning: location unavailable")
    if not tracker.capabilities["steps"]:
        print("Warning: step counter unavailable")

    tracker.start()
    started = time.time()
    try:
        while True:
            time.sleep(1)
            if duration and time.time() - started >= duration:
                break
            if isinstance(source, PlaybackLocationSource) and source.is_finished():
                print("\nPlayback finished")
                tracker.flush()
                break
            state = tracker.get_state()
            print(f"\r{state['steps']} steps, {state['track_points']} fixes", end="", flush=True)
    except KeyboardInterrupt:
        print("\nRecording interrupted")
        tracker.logger.log("Recording interrupted by user")
    finally:
        section_id = tracker.section_id
        tracker.stop()
        if isinstance(source, LocationRecorder):
            source.save()

    section = tracker.store.get_section(section_id) if section_id else None
    if section:
        print("\nSession summary:")
        print(f"  Distance: {section.distance_meters or 0:.0f}m")
        print(f"  Duration: {section.duration_seconds or 0:.0f}s")
        print(f"  Steps: {tracker.current_steps}")
    elif section_id:
        print("\nNo accurate location was recorded; the section was discarded")


def main():
    parser = argparse.ArgumentParser(
        description="Walkaround - Record walks and the places they pass through"
    )
    parser.add_argument("--record-trace", metavar="FILE",
                        help="Save the raw GPS trace to a JSON file")
    parser.add_argument("--playback", metavar="FILE",
                        help="Record from a GPS trace JSON file")
    parser.add_argument("--speed", type=float, default=1.0,
                        help="Playback speed multiplier (default: 1.0)")
    parser.add_argument("--duration", type=float, metavar="SECONDS",
                        help="Stop recording after this many seconds")
    parser.add_argument("--list", action="store_true",
                        help="List recorded sections and exit")
    parser.add_argument("--show", type=int, metavar="ID",
                        help="Show the addresses passed in a section and exit")
    parser.add_argument("--rebuild", type=int, metavar="ID",
                        help="Re-derive a section's addresses from its track and exit")
    parser.add_argument("--delete", type=int, metavar="ID",
                        help="Delete a section with its track and exit")
    parser.add_argument("--map", type=int, metavar="ID",
                        help="Write an HTML map of a section and exit")
    parser.add_argument("--output", "-o", default="walkaround_map.html",
                        help="Output HTML file for --map (default: walkaround_map.html)")
    parser.add_argument("--set", metavar="KEY=VALUE", action="append",
                        help="Change a setting and exit (may be repeated)")
    parser.add_argument("--db", default=CONFIG["db_path"],
                        help=f"Database path (default: {CONFIG['db_path']})")
    parser.add_argument("--log", metavar="FILE",
                        help="Log file path (default: walkaround_TIMESTAMP.log)")

    args = parser.parse_args()

    if args.playback and args.record_trace:
        parser.error("--playback and --record-trace cannot be used together")

    settings_changes = []
    for item in args.set or []:
        try:
            settings_changes.append(_parse_setting(item))
        except ValueError as e:
            parser.error(str(e))

    store = TrackStore(args.db)
    settings = Settings(store)

    # Settings: early exit
    if settings_changes:
        for key, value in settings_changes:
            settings.set(key, value)
            print(f"{key} = {settings.get(key)!r}")
        store.close()
        return

    log_path = args.log
    if not log_path:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_path = f"walkaround_{timestamp}.log"
    recording = not (args.list or args.show is not None or args.rebuild is not None
                     or args.delete is not None or args.map is not None)
    logger = Logger(log_path if recording or args.log else None, echo=False)

    resolver = AddressResolver(NominatimGeocoder(logger=logger), settings=settings, logger=logger)
    processor = SectionProcessor(store, resolver, settings=settings, logger=logger)

    try:
        if args.list:
            _list_sections(processor)
            return
        if args.show is not None:
            if not _show_section(processor, args.show):
                sys.exit(1)
            return
        if args.rebuild is not None:
            records = SectionReplaySegmenter(store, resolver, settings, logger).rebuild(args.rebuild)
            if records is None:
                print(f"Section {args.rebuild} cannot be rebuilt (missing or never started)")
                sys.exit(1)
            print(f"Rebuilt section {args.rebuild}: {len(records)} addresses")
            return
        if args.delete is not None:
            if not processor.delete_section(args.delete):
                print(f"Section {args.delete} not found")
                sys.exit(1)
            print(f"Deleted section {args.delete}")
            return
        if args.map is not None:
            if not _write_map(store, processor, args.map, args.output):
                sys.exit(1)
            return

        if args.playback:
            if not Path(args.playback).exists():
                print(f"Playback file not found: {args.playback}")
                sys.exit(1)
            location_source = PlaybackLocationSource(args.playback, args.speed)
        elif args.record_trace:
            location_source = LocationRecorder(TermuxLocationSource(), args.record_trace)
        else:
            location_source = TermuxLocationSource()

        def announce(record):
            print(f"\nNow at: {record.city_display_with_feature() or record.address_display()}")

        tracker = SessionTracker(
            store, resolver, location_source,
            step_source=TermuxStepSource(),
            settings=settings,
            logger=logger,
            on_address_update=announce,
        )
        _record(tracker, args.duration)
    finally:
        logger.close()
        store.close()


if __name__ == "__main__":
    main()
