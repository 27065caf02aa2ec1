#!/usr/bin/env python3
"""
Example: Concurrent Document Submission

Builds a gateway allowing 5 submissions per second and pushes 20 copies of
a sample document through it from a pool of 10 worker threads. The gate
admits them in batches of five, one batch per second. Failed submissions
(the demo signature is not a real one) are logged, then the gateway is
shut down.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import date

from crpt_tools import CrptApi, Description, Document, GatewayError, Product, TimeUnit

logger = logging.getLogger("submit_documents")

SUBMISSIONS = 20
WORKERS = 10


def sample_document() -> Document:
    """The demo document, with the same values in every field it sets."""
    product = Product(
        certificate_document="Certificate123",
        certificate_document_date=date(2024, 1, 23),
        certificate_document_number="CertNumber123",
        owner_inn="1234567890",
        producer_inn="1234567890",
        production_date=date(2024, 1, 23),
        tnved_code="TNVED123",
        uit_code="UIT123",
        uitu_code="UITU123",
    )
    return Document(
        description=Description(participant_inn="1234567890"),
        doc_id="Doc123",
        doc_status="Draft",
        doc_type="LP_INTRODUCE_GOODS",
        import_request=True,
        owner_inn="1234567890",
        participant_inn="1234567890",
        producer_inn="1234567890",
        production_date=date(2024, 1, 23),
        production_type="TypeA",
        products=[product],
        reg_date=date(2024, 1, 23),
        reg_number="Reg123",
    )


def submit_one(api: CrptApi, document: Document, n: int) -> None:
    try:
        result = api.submit(document, "signature")
        logger.info("Submission %d: HTTP %s", n, result["status_code"])
    except GatewayError as e:
        logger.error("Submission %d failed: %s", n, e.to_dict())


def main():
    api = CrptApi(TimeUnit.SECONDS, 5)
    document = sample_document()

    with ThreadPoolExecutor(max_workers=WORKERS) as pool:
        futures = [pool.submit(submit_one, api, document, n) for n in range(1, SUBMISSIONS + 1)]
        for future in as_completed(futures):
            future.result()

    api.shutdown()
    print(api.status())


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(threadName)s %(levelname)s %(message)s",
    )
    main()
