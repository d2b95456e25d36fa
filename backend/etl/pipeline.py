"""
ETL Pipeline Orchestrator - Coordinates Classify, Extract, Standardize, Dedup, Resolve and Load.

Flow: Headers → Classify → Read → Standardize → Dedup → Resolve (flights) → Load → Quarantine flush

An unknown file type stops that file before any row is read. Row failures
only ever quarantine the row. A file that cannot be read, or quarantine
rows that cannot be saved anywhere, stop the run.
"""
import logging
import os
import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional, Iterable, Tuple, Union

from .classify import FileTypeClassifier
from .config import Config
from .dedup import Deduplicator
from .extract import CSVReader
from .load import ResilientLoader, PacingPolicy
from .models import EntityType, FileResult, LoadSummary, signature_for
from .quarantine import QuarantineSink
from .resolver import AirportResolver
from .transform import RowStandardizer

SALES_TYPES = (EntityType.TRAVEL_AGENCY_SALES, EntityType.CORPORATE_SALES)

FileInput = Union[str, Tuple[str, str]]


@dataclass
class StagedRows:
    records: List[Dict[str, Any]] = field(default_factory=list)
    payloads: List[Dict[str, Any]] = field(default_factory=list)
    quarantined: int = 0
    reasons: Counter = field(default_factory=Counter)


class ETLPipeline:
    """
    Airline warehouse ETL pipeline.

    All collaborators can be injected; by default the store is built from
    Config and the quarantine sink, loader and pacing follow Config too.
    """

    def __init__(self, store=None, sink: Optional[QuarantineSink] = None,
                 loader: Optional[ResilientLoader] = None,
                 classifier: Optional[FileTypeClassifier] = None,
                 reader: Optional[CSVReader] = None,
                 pacing: Optional[PacingPolicy] = None):
        if store is None:
            from backend.supabase_client import WarehouseStore
            store = WarehouseStore.from_env(Config.SUPABASE_URL, Config.SUPABASE_KEY)
        self.store = store
        self.sink = sink or QuarantineSink(
            store,
            table=Config.QUARANTINE_TABLE,
            fallback_path=Config.QUARANTINE_FALLBACK_PATH,
            batch_size=Config.QUARANTINE_BATCH_SIZE,
        )
        self.loader = loader or ResilientLoader(
            store,
            self.sink,
            batch_size=Config.LOAD_BATCH_SIZE,
            pacing=pacing or PacingPolicy(Config.BATCH_INTERVAL_SECONDS, Config.RECORD_INTERVAL_SECONDS),
            skip_existing=Config.SKIP_EXISTING,
        )
        self.classifier = classifier or FileTypeClassifier()
        self.reader = reader or CSVReader()
        self.standardizer = RowStandardizer(
            country_lookup=getattr(store, "find_country", None),
            country_id_lookup=getattr(store, "country_id", None),
        )

    def detect(self, file_path: str) -> Dict[str, Any]:
        headers = self.reader.read_headers(file_path)
        return self.classifier.describe(headers)

    def process(self, file_path: str, original_filename: Optional[str] = None, load: bool = True,
                dedup: Optional[Deduplicator] = None,
                expected: Optional[Iterable[EntityType]] = None):
        """
        Process one file through the complete pipeline.
        Yields (percentage, message, result_dict); only the last frame has a result.
        """
        start_time = time.time()
        filename = original_filename or os.path.basename(file_path)

        # ─── 1. Classify (0-20%) ───
        yield 5, "Reading headers...", None
        headers = self.reader.read_headers(file_path)
        entity_type = self.classifier.detect(headers)

        if entity_type is EntityType.UNKNOWN:
            logging.warning(f"File \"{filename}\" has unknown type. Headers: {headers}")
            result = FileResult(
                filename=filename,
                file_type=entity_type.value,
                success=False,
                error=f"Cannot detect file type. Headers: {', '.join(headers)}",
                processing_time_ms=(time.time() - start_time) * 1000,
            )
            yield 100, "Unknown file type", result.to_dict()
            return

        allowed = tuple(expected) if expected else None
        if allowed and entity_type not in allowed:
            logging.warning(f"File \"{filename}\" detected as {entity_type.value}, expected one of {[t.value for t in allowed]}")
            result = FileResult(
                filename=filename,
                file_type=entity_type.value,
                success=False,
                error=f"Unexpected file type for this load: {entity_type.value}",
                processing_time_ms=(time.time() - start_time) * 1000,
            )
            yield 100, "Unexpected file type", result.to_dict()
            return

        logging.info(f"File \"{filename}\" detected as: {entity_type.value}")
        signature = signature_for(entity_type)
        yield 20, f"Detected as {entity_type.value}.", None

        try:
            # ─── 2. Extract (20-40%) ───
            parsed = self.reader.parse(file_path)
            total_rows = (len(parsed["rows"]) + len(parsed["bad_lines"])
                          + len(parsed.get("undecodable_rows", [])))
            yield 40, f"Read {total_rows} rows.", None

            # ─── 3. Standardize / Dedup / Resolve (40-60%) ───
            if dedup is None:
                dedup = Deduplicator(signature.conflict_key)
            dedup.start_file()
            resolver = None
            if load and entity_type is EntityType.FLIGHTS:
                resolver = AirportResolver(self.store)
                resolver.preload()

            staged = self._stage(entity_type, parsed, dedup, resolver)
            yield 60, f"{len(staged.records)} clean rows, {staged.quarantined} quarantined.", None

            # ─── 4. Load (60-90%) ───
            summary = None
            if load:
                yield 65, f"Uploading to {signature.target_table}...", None
                if staged.records:
                    summary = self.loader.load(entity_type, signature.target_table, staged.records, staged.payloads)
                else:
                    summary = LoadSummary(table=signature.target_table)
                quarantined = staged.quarantined + summary.already_existed + summary.errored
            else:
                quarantined = staged.quarantined

            # ─── 5. Quarantine (90-100%) ───
            yield 90, "Saving quarantined rows...", None
        finally:
            self.sink.flush()

        result = FileResult(
            filename=filename,
            file_type=entity_type.value,
            success=True,
            total_rows=total_rows,
            clean_rows=len(staged.records),
            quarantined_rows=quarantined,
            load=summary,
            document_hash=parsed.get("document_hash"),
            processing_time_ms=(time.time() - start_time) * 1000,
            reasons=dict(staged.reasons),
        )
        logging.info(
            f"File \"{filename}\": total={result.total_rows} clean={result.clean_rows} "
            f"quarantined={result.quarantined_rows}"
        )
        yield 100, "Done", result.to_dict()

    def run_file(self, file_path: str, original_filename: Optional[str] = None, load: bool = True,
                 **kwargs) -> Dict[str, Any]:
        result = None
        for _, _, res in self.process(file_path, original_filename, load=load, **kwargs):
            if res:
                result = res
        return result

    def run_files(self, files: Iterable[FileInput], load: bool = True) -> List[Dict[str, Any]]:
        """Process several files one after another, each with its own dedup scope."""
        results = []
        for file_input in files:
            path, name = self._split_input(file_input)
            logging.info(f"Processing: {name}")
            results.append(self.run_file(path, name, load=load))
        return results

    def run_sales_files(self, files: Iterable[FileInput], load: bool = True) -> Dict[str, Any]:
        """
        One logical sales load across several files.

        Files run in order and share one Deduplicator, so a transaction ID
        already seen in an earlier file is quarantined as a cross-file duplicate.
        """
        dedup = Deduplicator("transaction_id")
        total = LoadSummary(table=signature_for(EntityType.TRAVEL_AGENCY_SALES).target_table)
        results = []

        for file_input in files:
            path, name = self._split_input(file_input)
            logging.info(f"Processing sales file: {name}")
            result = self.run_file(path, name, load=load, dedup=dedup, expected=SALES_TYPES)
            results.append(result)
            total.attempted += result["attempted"]
            total.uploaded += result["uploaded"]
            total.already_existed += result["already_existed"]
            total.errored += result["errored"]

        dedup_stats = dedup.get_stats()
        if dedup_stats["across_files"]:
            logging.info(f"Cross-file duplicates found: {dedup_stats['across_files']}")

        return {
            "files": results,
            "load": total.to_dict(),
            "clean_rows": sum(r["clean_rows"] for r in results),
            "quarantined_rows": sum(r["quarantined_rows"] for r in results),
            "duplicates": dedup_stats,
        }

    # ─────────────────────────────────────────────────────────────
    # Staging
    # ─────────────────────────────────────────────────────────────

    def _stage(self, entity_type: EntityType, parsed: Dict[str, Any], dedup: Deduplicator,
               resolver: Optional[AirportResolver] = None) -> StagedRows:
        staged = StagedRows()

        def reject(payload: Dict[str, Any], reason: str) -> None:
            self.sink.add(entity_type, payload, reason)
            staged.quarantined += 1
            staged.reasons[reason.split(":")[0]] += 1

        for line in parsed.get("bad_lines", []):
            reject({"raw_line": ",".join(str(v) for v in line)}, "Malformed CSV line")

        for row in parsed.get("undecodable_rows", []):
            reject(row, "Invalid UTF-8 in row")

        for row in parsed["rows"]:
            record, reason = self.standardizer.standardize(entity_type, row)
            if reason:
                reject(row, reason)
                continue

            duplicate = dedup.check(record, register=False)
            if duplicate:
                reject(row, duplicate)
                continue

            if resolver is not None:
                unresolved = [
                    key for key in (record["origin_airport_key"], record["destination_airport_key"])
                    if not resolver.ensure(key)
                ]
                if unresolved:
                    reject(row, f"Unresolved airport reference: {', '.join(unresolved)}")
                    continue

            dedup.register(record)
            staged.records.append(record)
            staged.payloads.append(row)

        return staged

    def _split_input(self, file_input: FileInput) -> Tuple[str, str]:
        if isinstance(file_input, (tuple, list)):
            return file_input[0], file_input[1]
        return file_input, os.path.basename(file_input)
