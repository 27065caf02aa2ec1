"""
Pytest configuration for tests.

Shared fixtures: a sample goods-introduction document. No test talks to
the real service.
"""
from datetime import date

import pytest

from crpt_tools.document import Description, Document, Product


@pytest.fixture
def sample_product():
    return Product(
        certificate_document="Certificate123",
        certificate_document_date=date(2024, 1, 23),
        certificate_document_number="Cert123Num",
        owner_inn="1234567890",
        producer_inn="0987654321",
        production_date=date(2024, 1, 23),
        tnved_code="TNVED123",
        uit_code="UIT123",
        uitu_code="UITU123",
    )


@pytest.fixture
def sample_document(sample_product):
    return Document(
        description=Description(participant_inn="1234567890"),
        doc_id="Doc123",
        doc_status="Draft",
        doc_type="LP_INTRODUCE_GOODS",
        import_request=True,
        owner_inn="1234567890",
        participant_inn="1234567890",
        producer_inn="0987654321",
        production_date=date(2024, 1, 23),
        production_type="TypeA",
        products=[sample_product],
        reg_date=date(2024, 1, 23),
        reg_number="Reg123",
    )

