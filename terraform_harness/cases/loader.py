"""Test case loading."""

import json
from pathlib import Path
from typing import List, Dict, Any, Optional, Iterator

from .schema import HarnessCase, validate_case


class CaseLoader:
    """Load test cases from a JSONL file or a JSON file (one case or a list)."""

    def __init__(self, cases_path: str):
        """
        Initialize case loader.

        Args:
            cases_path: Path to .jsonl or .json case file
        """
        self.cases_path = Path(cases_path)
        if not self.cases_path.exists():
            raise FileNotFoundError(f"Case file not found: {cases_path}")

    @property
    def base_dir(self) -> Path:
        """Directory that relative terraform_dir values are resolved against."""
        return self.cases_path.resolve().parent

    def load(self, validate: bool = True) -> List[HarnessCase]:
        """Load every case into memory."""
        return list(self.stream(validate=validate))

    def stream(self, validate: bool = True) -> Iterator[HarnessCase]:
        """
        Stream cases one at a time.

        Args:
            validate: Whether to validate cases against schema

        Yields:
            HarnessCase objects with terraform_dir resolved
        """
        for position, case_dict in enumerate(self._read(), start=1):
            if validate:
                errors = validate_case(case_dict)
                if errors:
                    raise ValueError(
                        f"Validation errors in case {position}:\n" +
                        "\n".join(f"  - {e}" for e in errors)
                    )

            try:
                case = HarnessCase.from_dict(case_dict)
            except KeyError as e:
                raise ValueError(f"Error parsing case {position}: missing {e}")

            terraform_dir = Path(case.terraform_dir)
            if not terraform_dir.is_absolute():
                case.terraform_dir = str((self.base_dir / terraform_dir).resolve())
            yield case

    def filter(
        self,
        tags: Optional[List[str]] = None,
        limit: Optional[int] = None,
    ) -> List[HarnessCase]:
        """
        Load cases with filters applied.

        Args:
            tags: Filter by tags (case must have all specified tags)
            limit: Maximum number of cases to return
        """
        cases = []
        for case in self.stream(validate=True):
            if tags and not all(tag in case.tags for tag in tags):
                continue

            cases.append(case)
            if limit and len(cases) >= limit:
                break

        return cases

    def get_by_id(self, case_id: str) -> Optional[HarnessCase]:
        """Get a specific case by ID."""
        for case in self.stream(validate=True):
            if case.case_id == case_id:
                return case
        return None

    def _read(self) -> Iterator[Dict[str, Any]]:
        if self.cases_path.suffix == '.jsonl':
            with open(self.cases_path, 'r') as f:
                for line in f:
                    line = line.strip()
                    if line:
                        yield json.loads(line)
            return

        with open(self.cases_path, 'r') as f:
            data = json.load(f)
        if isinstance(data, list):
            yield from data
        else:
            yield data
