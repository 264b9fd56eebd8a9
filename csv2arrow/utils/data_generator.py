# ========================
# csv2arrow/utils/data_generator.py
# ========================

"""
Synthetic Data Generator

Generates realistic NYC 311-style service request files for testing the
ingestion pipeline: messy missing-value spellings, padded categorical
values, a redundant "(lat, long)" location column and a mix of integer,
float, timestamp and string columns.
"""

import csv
import gzip
import logging
import random
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from ..pipeline.inference import DEFAULT_DATE_PATTERN

logger = logging.getLogger(__name__)

HEADER = [
    'Unique Key', 'Created Date', 'Closed Date', 'Agency', 'Complaint Type',
    'Incident Address', 'Incident Zip', 'Borough', 'Status',
    'Latitude', 'Longitude', 'Location',
]

# Spellings the default configuration treats as missing
MISSING_SPELLINGS = ('', 'N/A', 'NA')


class DataGenerator:
    """
    Generates realistic 311 service request data with controlled messiness.
    Output is fully determined by the seed.
    """

    def __init__(self, seed: int = 42, date_pattern: str = DEFAULT_DATE_PATTERN):
        """
        Initialize data generator with a seed.

        Args:
            seed (int): Random seed for reproducibility
            date_pattern (str): strftime pattern for the date columns
        """
        self._random = random.Random(seed)
        self.date_pattern = date_pattern

        self.agencies = [
            {"name": "NYPD", "weight": 0.35, "complaints": ["Noise - Residential", "Illegal Parking", "Blocked Driveway"]},
            {"name": "HPD", "weight": 0.25, "complaints": ["HEAT/HOT WATER", "PLUMBING", "PAINT/PLASTER"]},
            {"name": "DSNY", "weight": 0.15, "complaints": ["Dirty Conditions", "Missed Collection"]},
            {"name": "DOT", "weight": 0.15, "complaints": ["Street Condition", "Street Light Condition"]},
            {"name": "DEP", "weight": 0.10, "complaints": ["Water System", "Noise"]},
        ]

        # Approximate centre of each borough (lat, long) and a sample of zip codes
        self.boroughs = {
            "MANHATTAN": ((40.7831, -73.9712), [10001, 10002, 10025, 10027, 10036]),
            "BROOKLYN": ((40.6782, -73.9442), [11201, 11206, 11215, 11221, 11226]),
            "QUEENS": ((40.7282, -73.7949), [11354, 11368, 11373, 11375, 11385]),
            "BRONX": ((40.8448, -73.8648), [10451, 10452, 10456, 10458, 10467]),
            "STATEN ISLAND": ((40.5795, -74.1502), [10301, 10304, 10306, 10312, 10314]),
        }

        self.statuses = ["Closed", "Closed", "Closed", "Open", "In Progress", "Assigned"]
        self.streets = [
            "BROADWAY", "AMSTERDAM AVENUE", "FLATBUSH AVENUE", "QUEENS BOULEVARD",
            "GRAND CONCOURSE", "VICTORY BOULEVARD", "ATLANTIC AVENUE", "WEST 125 STREET",
        ]

    def generate_dataset(self,
                         file_path: str,
                         num_rows: int,
                         missing_rate: float = 0.05,
                         padding_rate: float = 0.02,
                         missing_spellings: Sequence[str] = MISSING_SPELLINGS,
                         start_date: Optional[datetime] = None,
                         compress: bool = False) -> Dict[str, Any]:
        """
        Generate a 311-style dataset.

        Args:
            file_path (str): Output CSV file path
            num_rows (int): Number of rows to generate
            missing_rate (float): Chance that a nullable field is missing
            padding_rate (float): Chance that a categorical value is space-padded
            missing_spellings (list): Literals written for missing values
            start_date (datetime): Earliest created date
            compress (bool): Write gzip-compressed output

        Returns:
            dict: Generation statistics
        """
        logger.info(f"Generating {num_rows:,} rows with {missing_rate:.1%} missing rate...")

        if start_date is None:
            start_date = datetime(2023, 1, 1)

        stats = {
            'total_rows': num_rows,
            'missing_rate': missing_rate,
            'columns': list(HEADER),
            'missing_by_column': {name: 0 for name in HEADER},
        }

        Path(file_path).parent.mkdir(parents=True, exist_ok=True)
        opener = gzip.open if compress else open

        with opener(file_path, 'wt', newline='', encoding='utf-8') as f:
            writer = csv.writer(f)
            writer.writerow(HEADER)

            for i in range(num_rows):
                record = self._generate_single_record(
                    i, start_date, missing_rate, padding_rate, missing_spellings, stats
                )
                writer.writerow(record)

                if (i + 1) % 10000 == 0:
                    logger.debug(f"Generated {i + 1:,} records")

        logger.info(f"Dataset generated: {file_path}")
        logger.info(f"Missing values by column: {stats['missing_by_column']}")

        return stats

    def _generate_single_record(self,
                                index: int,
                                start_date: datetime,
                                missing_rate: float,
                                padding_rate: float,
                                missing_spellings: Sequence[str],
                                stats: Dict[str, Any]) -> List[Any]:
        """Generate a single record; missing fields use a random spelling."""
        rnd = self._random

        unique_key = 50000000 + index
        created = start_date + timedelta(seconds=rnd.randint(0, 365 * 24 * 3600))

        weights = [a["weight"] for a in self.agencies]
        agency = rnd.choices(self.agencies, weights=weights)[0]
        complaint = rnd.choice(agency["complaints"])

        borough = rnd.choice(sorted(self.boroughs))
        (lat_centre, long_centre), zips = self.boroughs[borough]
        incident_zip = rnd.choice(zips)
        latitude = round(lat_centre + rnd.uniform(-0.05, 0.05), 6)
        longitude = round(long_centre + rnd.uniform(-0.05, 0.05), 6)
        address = f"{rnd.randint(1, 2500)} {rnd.choice(self.streets)}"

        status = rnd.choice(self.statuses)
        closed = None
        if status == "Closed":
            closed = created + timedelta(minutes=rnd.randint(5, 14 * 24 * 60))

        record = {
            'Unique Key': unique_key,
            'Created Date': created.strftime(self.date_pattern),
            'Closed Date': closed.strftime(self.date_pattern) if closed else None,
            'Agency': self._pad(agency["name"], padding_rate),
            'Complaint Type': complaint,
            'Incident Address': address,
            'Incident Zip': incident_zip,
            'Borough': self._pad(borough, padding_rate),
            'Status': status,
            'Latitude': latitude,
            'Longitude': longitude,
            'Location': f"({latitude}, {longitude})",
        }

        # Geography goes missing as a whole, like an unlocated request
        if rnd.random() < missing_rate:
            for name in ('Latitude', 'Longitude', 'Location'):
                record[name] = None
        for name in ('Incident Zip', 'Incident Address'):
            if rnd.random() < missing_rate:
                record[name] = None
        if rnd.random() < missing_rate:
            record['Borough'] = "Unspecified"

        row = []
        for name in HEADER:
            value = record[name]
            if value is None:
                stats['missing_by_column'][name] += 1
                value = rnd.choice(missing_spellings)
            row.append(value)
        return row

    def _pad(self, value: str, padding_rate: float) -> str:
        if self._random.random() < padding_rate:
            return f"  {value} "
        return value
