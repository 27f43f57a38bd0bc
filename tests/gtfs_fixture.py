"""Small STCP-like GTFS feed shared by the tests.

Route 205 runs along a straight east-west street. Outbound stops sit on
latitude 41.1500 from west (A) to east (D); inbound stops sit on 41.1501 in
the opposite order. Each shape has 31 points spaced 0.0005 degrees apart, so
the stops land on shape indices 0, 10, 20 and 30.
"""

from pathlib import Path

from bustrack.models import Stop

OUTBOUND_LAT = 41.1500
INBOUND_LAT = 41.1501
WEST_LNG = -8.6200
STEP = 0.0005
SHAPE_POINTS = 31

ROUTES_TXT = """route_id,route_short_name,route_long_name,route_desc,route_type,route_url,route_color,route_text_color
205,205,Castelo do Queijo - Campanhã,,3,,FF0000,FFFFFF
900M,900M,Trindade - Maia (Madrugada),,3,,000000,FFFFFF
Z4,Z4,Zona 4,,3,,00FF00,000000
"""

TRIPS_TXT = """route_id,service_id,trip_id,trip_headsign,direction_id,shape_id
205,UTEIS,T0_0900,Campanhã,0,SH0
205,UTEIS,T0_0800,Campanhã,0,SH0
205,UTEIS,T0_SHORT,Bessa,0,SH0
205,UTEIS,T1_0830,Castelo do Queijo,1,SH1
900M,UTEIS,NIGHT_1,,,SHN
"""

STOPS_TXT = """stop_id,stop_code,stop_name,stop_lat,stop_lon
A,A,Castelo do Queijo,41.1500,-8.6200
B,B,Serralves,41.1500,-8.6150
C,C,Boavista,41.1500,-8.6100
D,D,Campanhã,41.1500,-8.6050
A1,A1,Castelo do Queijo (Sul),41.1501,-8.6200
B1,B1,Serralves (Sul),41.1501,-8.6150
C1,C1,Boavista (Sul),41.1501,-8.6100
D1,D1,Campanhã (Sul),41.1501,-8.6050
"""

STOP_TIMES_TXT = """trip_id,arrival_time,departure_time,stop_id,stop_sequence
T0_0800,08:00:00,08:00:00,A,1
T0_0800,08:05:00,08:05:00,B,2
T0_0800,08:10:00,08:10:00,C,3
T0_0800,08:15:00,08:15:00,D,4
T0_0900,09:15:00,09:15:00,D,4
T0_0900,09:10:00,09:10:00,C,3
T0_0900,09:05:00,09:05:00,B,2
T0_0900,09:00:00,09:00:00,A,1
T0_SHORT,08:30:00,08:30:00,A,1
T0_SHORT,08:35:00,08:35:00,B,2
T0_SHORT,08:40:00,08:40:00,C,3
T1_0830,08:30:00,08:30:00,D1,1
T1_0830,08:35:00,08:35:00,C1,2
T1_0830,08:40:00,08:40:00,B1,3
T1_0830,08:45:00,08:45:00,A1,4
NIGHT_1,24:10:00,24:10:00,A,1
NIGHT_1,25:30:00,25:30:00,D,2
"""


def shape_lng(index: int) -> float:
    return round(WEST_LNG + STEP * index, 4)


def shapes_txt() -> str:
    """Shape rows, deliberately written in descending sequence order."""
    rows = ["shape_id,shape_pt_lat,shape_pt_lon,shape_pt_sequence"]
    for i in reversed(range(SHAPE_POINTS)):
        rows.append(f"SH0,{OUTBOUND_LAT:.4f},{shape_lng(i):.4f},{i + 1}")
    for i in reversed(range(SHAPE_POINTS)):
        # Inbound runs east to west
        rows.append(f"SH1,{INBOUND_LAT:.4f},{shape_lng(SHAPE_POINTS - 1 - i):.4f},{i + 1}")
    return "\n".join(rows) + "\n"


TABLES = {
    "routes.txt": ROUTES_TXT,
    "trips.txt": TRIPS_TXT,
    "stops.txt": STOPS_TXT,
    "stop_times.txt": STOP_TIMES_TXT,
}


def write_feed(directory, skip=()) -> Path:
    """Write every table of the feed into `directory`, except those in `skip`."""
    directory = Path(directory)
    tables = dict(TABLES)
    tables["shapes.txt"] = shapes_txt()
    for name, content in tables.items():
        if name not in skip:
            (directory / name).write_text(content, encoding="utf-8")
    return directory


def outbound_stops():
    return [
        Stop("A", "Castelo do Queijo", OUTBOUND_LAT, -8.6200),
        Stop("B", "Serralves", OUTBOUND_LAT, -8.6150),
        Stop("C", "Boavista", OUTBOUND_LAT, -8.6100),
        Stop("D", "Campanhã", OUTBOUND_LAT, -8.6050),
    ]


def inbound_stops():
    return [
        Stop("D1", "Campanhã (Sul)", INBOUND_LAT, -8.6050),
        Stop("C1", "Boavista (Sul)", INBOUND_LAT, -8.6100),
        Stop("B1", "Serralves (Sul)", INBOUND_LAT, -8.6150),
        Stop("A1", "Castelo do Queijo (Sul)", INBOUND_LAT, -8.6200),
    ]
