from veilpage.models import SpanKind
from veilpage.regex_detect import regex_findall


def _kinds(text):
    return {s.kind for s in regex_findall(text)}


def test_blank_text_yields_nothing():
    assert regex_findall("") == []
    assert regex_findall("   \n") == []


def test_email_and_phone_offsets():
    text = "Contact: jean@example.com, tel 0612345678"
    spans = regex_findall(text)
    assert [(s.kind, s.text) for s in spans] == [
        (SpanKind.EMAIL, "jean@example.com"),
        (SpanKind.PHONE, "0612345678"),
    ]
    for s in spans:
        assert text[s.offset : s.end] == s.text


def test_french_phone_variants():
    for phone in ("06 12 34 56 78", "+33 6 12 34 56 78", "01.23.45.67.89"):
        assert SpanKind.PHONE in _kinds(f"Tel : {phone}")


def test_business_identifiers():
    assert SpanKind.SIRET in _kinds("SIRET 123 456 789 00012")
    assert SpanKind.TAX_ID in _kinds("TVA FR12345678901")
    assert SpanKind.IBAN in _kinds("IBAN FR76 3000 6000 0112 3456 7890 189")


def test_amount_invoice_date_postal_code():
    kinds = _kinds("Facture 20240042 du 12/03/2024, 75002 Paris, total 1 245,77 €")
    assert {SpanKind.INVOICE_REF, SpanKind.DATE, SpanKind.POSTAL_CODE, SpanKind.AMOUNT} <= kinds


def test_plain_prose_is_clean():
    assert regex_findall("Bonjour, merci pour votre lettre.") == []
