"""Render a recorded section as an interactive HTML map."""

from datetime import datetime
from typing import Optional

import folium
from folium import plugins

from .dedup import filter_repeated
from .models import AddressBreakpoint, Section, TrackPoint


def _format_time(timestamp: Optional[float]) -> str:
    if timestamp is None:
        return "unknown"
    return datetime.fromtimestamp(timestamp).strftime("%Y-%m-%d %H:%M:%S")


def _breakpoint_popup(index: int, record: AddressBreakpoint) -> str:
    return f"""
        <b>{index}. {record.city_display() or 'Unknown address'}</b><br>
        {record.feature_name_display() or ''}<br>
        {record.address_display() or ''}<br>
        Time: {_format_time(record.timestamp)}
    """


def create_section_map(section: Section, track: list[TrackPoint],
                       breakpoints: list[AddressBreakpoint]) -> Optional[folium.Map]:
    """Create a map of the smoothed track and its visible breakpoints.

    Returns None when the section has no track to show.
    """
    if not track:
        return None

    center_lat = sum(p.lat for p in track) / len(track)
    center_lon = sum(p.lon for p in track) / len(track)

    m = folium.Map(location=[center_lat, center_lon], zoom_start=16,
                   tiles="CartoDB positron")
    folium.TileLayer("OpenStreetMap", name="OpenStreetMap").add_to(m)
    folium.TileLayer("CartoDB dark_matter", name="Dark").add_to(m)

    distance = section.distance_meters or 0.0
    folium.PolyLine(
        [[p.lat, p.lon] for p in track],
        weight=4,
        color="blue",
        opacity=0.7,
        popup=f"Section {section.id}: {distance / 1000:.2f} km"
    ).add_to(m)

    start, end = track[0], track[-1]
    folium.Marker(
        [start.lat, start.lon],
        popup=f"Start {_format_time(start.timestamp)}",
        icon=folium.Icon(color="green", icon="play")
    ).add_to(m)
    folium.Marker(
        [end.lat, end.lon],
        popup=f"End {_format_time(end.timestamp)}",
        icon=folium.Icon(color="red", icon="stop")
    ).add_to(m)

    address_group = folium.FeatureGroup(name="Addresses", show=True)
    visible = filter_repeated(sorted(breakpoints, key=lambda b: b.timestamp))
    for i, record in enumerate(visible, start=1):
        if record.lat is None or record.lon is None:
            continue
        folium.CircleMarker(
            location=[record.lat, record.lon],
            radius=6,
            color="purple",
            fill=True,
            popup=folium.Popup(_breakpoint_popup(i, record), max_width=250)
        ).add_to(address_group)
    address_group.add_to(m)

    folium.LayerControl().add_to(m)
    plugins.Fullscreen().add_to(m)

    return m
