import hashlib
import logging
from typing import List, Dict, Any

import pandas as pd

from .errors import FileReadError
from .schema import RawRow

# Undecodable bytes are read as U+FFFD so one bad row cannot fail the file
REPLACEMENT_CHAR = "\ufffd"


def get_file_hash(file_path: str) -> str:
    sha256_hash = hashlib.sha256()
    with open(file_path, "rb") as f:
        for byte_block in iter(lambda: f.read(4096), b""):
            sha256_hash.update(byte_block)
    return sha256_hash.hexdigest()


class CSVReader:
    """
    Reads delimited UTF-8 extracts with a header row.

    Every cell is kept as a string; empty cells stay "" rather than NaN so
    standardizers see exactly what the file contained. Lines with the wrong
    number of fields are collected in `bad_lines` instead of failing the file.
    """

    def read_headers(self, file_path: str) -> List[str]:
        try:
            df = pd.read_csv(file_path, nrows=0, dtype=str, encoding="utf-8",
                             encoding_errors="replace")
        except pd.errors.EmptyDataError:
            return []
        except (OSError, UnicodeDecodeError, pd.errors.ParserError) as e:
            raise FileReadError(f"Cannot read headers from {file_path}: {e}") from e
        return [str(c) for c in df.columns]

    def parse(self, file_path: str) -> Dict[str, Any]:
        """
        Returns:
        {
            "document_hash": "...",
            "headers": [...],
            "rows": [{"Header": "value", ...}, ...],
            "bad_lines": [["field", ...], ...],
            "undecodable_rows": [{...}, ...],
            "source_file": file_path
        }
        """
        bad_lines: List[List[str]] = []

        def _capture(line: List[str]) -> None:
            bad_lines.append(line)
            return None

        try:
            df = pd.read_csv(
                file_path,
                dtype=str,
                keep_default_na=False,
                encoding="utf-8",
                encoding_errors="replace",
                engine="python",
                on_bad_lines=_capture,
            )
        except pd.errors.EmptyDataError:
            df = pd.DataFrame()
        except (OSError, UnicodeDecodeError, pd.errors.ParserError) as e:
            raise FileReadError(f"Cannot read {file_path}: {e}") from e

        # Short lines are padded with NaN by pandas
        df = df.fillna("")
        headers = [str(c) for c in df.columns]
        rows: List[RawRow] = []
        undecodable: List[RawRow] = []
        for record in df.to_dict(orient="records"):
            row = {str(k): str(v) for k, v in record.items()}
            if any(REPLACEMENT_CHAR in v for v in row.values()):
                undecodable.append(row)
            else:
                rows.append(row)
        if bad_lines:
            logging.warning(f"{len(bad_lines)} malformed line(s) in {file_path}")
        if undecodable:
            logging.warning(f"{len(undecodable)} row(s) with invalid UTF-8 in {file_path}")

        return {
            "document_hash": get_file_hash(file_path),
            "headers": headers,
            "rows": rows,
            "bad_lines": bad_lines,
            "undecodable_rows": undecodable,
            "source_file": file_path,
        }
