#!/usr/bin/env python3
"""One-off setup: create the Document(collection, id) uniqueness constraint in Neo4j.

Username reservations and contact pairs rely on it for conditional creates.
Run from repo root with .env (NEO4J_URI, NEO4J_USER, NEO4J_PASSWORD).
Idempotent.
"""
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(REPO_ROOT / "src"))

from dotenv import load_dotenv  # noqa: E402
from neo4j import GraphDatabase  # noqa: E402

from lovesignal.infrastructure import ensure_document_constraint, load_settings  # noqa: E402

load_dotenv(REPO_ROOT / ".env")


def main() -> int:
    settings = load_settings()
    driver = GraphDatabase.driver(
        settings.neo4j_uri, auth=(settings.neo4j_user, settings.neo4j_password)
    )
    try:
        ensure_document_constraint(driver)
        with driver.session() as session:
            count = session.run("MATCH (d:Document) RETURN count(d) AS n").single()["n"]
        print(f"Constraint in place; {count} document(s) stored.")
        return 0
    finally:
        driver.close()


if __name__ == "__main__":
    sys.exit(main())
