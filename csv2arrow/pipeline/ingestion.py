# ========================
# csv2arrow/pipeline/ingestion.py
# ========================

"""
Data Ingestion Module

Reads a delimited text file (optionally gzip-compressed) into raw string rows.
Values are returned exactly as they appear in the file; stripping and type
handling happen in later stages.
"""

import csv
import gzip
import logging
from typing import Iterator, List, NamedTuple

from .errors import MalformedRowError

logger = logging.getLogger(__name__)

GZIP_MAGIC = b'\x1f\x8b'


class RawTable(NamedTuple):
    """Header plus raw data rows, every row as long as the header."""

    header: List[str]
    rows: List[List[str]]


class CSVReader:
    """
    Reads a comma- or tab-separated file in chunks of raw rows.
    The file handle is closed on every exit path, including parse failures.
    """

    def __init__(self, file_path, delimiter: str = ',', has_header: bool = True,
                 encoding: str = 'utf-8-sig'):
        """
        Initialize the CSV reader.

        Args:
            file_path (str): Path to the delimited file (plain or gzip)
            delimiter (str): Single-character field delimiter
            has_header (bool): Treat the first row as column names
            encoding (str): Text encoding of the file
        """
        self.file_path = str(file_path)
        self.delimiter = delimiter
        self.has_header = has_header
        self.encoding = encoding
        self.header = []
        self.rows_read = 0
        logger.info(f"Initialized CSVReader for file: {self.file_path}")

    def is_gzipped(self) -> bool:
        with open(self.file_path, 'rb') as probe:
            return probe.read(2) == GZIP_MAGIC

    def _open(self):
        if self.is_gzipped():
            logger.info(f"Detected gzip-compressed input: {self.file_path}")
            return gzip.open(self.file_path, 'rt', newline='', encoding=self.encoding)
        return open(self.file_path, 'r', newline='', encoding=self.encoding)

    def read_in_chunks(self, chunk_size: int) -> Iterator[List[List[str]]]:
        """
        A generator that yields lists of raw rows.

        Args:
            chunk_size (int): The number of rows to yield per chunk.

        Yields:
            list[list[str]]: Raw field values for each row in the chunk.

        Raises:
            MalformedRowError: If a row's field count differs from the header's
        """
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")

        try:
            with self._open() as f:
                reader = csv.reader(f, delimiter=self.delimiter)
                self.header = []
                self.rows_read = 0
                expected = None
                chunk = []

                for fields in reader:
                    if not fields:
                        # A blank line is a missing value in a one-column file, noise otherwise
                        if expected != 1:
                            continue
                        fields = ['']

                    if expected is None:
                        expected = len(fields)
                        if self.has_header:
                            self.header = list(fields)
                            logger.info(f"CSV header: {self.header}")
                            continue
                        self.header = [f"column_{i}" for i in range(1, expected + 1)]
                        logger.info(f"No header row; generated {expected} column names")

                    self.rows_read += 1
                    if len(fields) != expected:
                        raise MalformedRowError(self.rows_read, expected, len(fields), reader.line_num)

                    chunk.append(fields)
                    if len(chunk) == chunk_size:
                        logger.debug(f"Yielding chunk with {len(chunk)} rows")
                        yield chunk
                        chunk = []

                # Yield any remaining rows in the last chunk
                if chunk:
                    logger.debug(f"Yielding final chunk with {len(chunk)} rows")
                    yield chunk

                logger.info(f"Total rows read: {self.rows_read}")

        except FileNotFoundError:
            logger.error(f"File '{self.file_path}' was not found")
            raise
        except MalformedRowError as e:
            logger.error(f"Malformed row in '{self.file_path}': {e}")
            raise
        except (csv.Error, UnicodeDecodeError, OSError) as e:
            logger.error(f"Error reading CSV file: {e}")
            raise

    def read_all(self, chunk_size: int = 10000) -> RawTable:
        """Read the whole file; type inference needs every value of every column."""
        rows = []
        for chunk in self.read_in_chunks(chunk_size):
            rows.extend(chunk)
        return RawTable(list(self.header), rows)
