"""Optional vCard contact book for resolving handles to names"""

import logging
import os
from typing import Dict, Optional

import phonenumbers
import vobject

logger = logging.getLogger(__name__)

FALLBACK_REGIONS = ('US', 'CA', 'GB')


def normalize_phone_number(raw_phone: str, region: str = 'US') -> Optional[str]:
    """Normalize a raw phone number to E.164 format"""
    try:
        phone_number = phonenumbers.parse(raw_phone, region)
    except phonenumbers.NumberParseException:
        return None
    return phonenumbers.format_number(phone_number, phonenumbers.PhoneNumberFormat.E164)


class ContactBook:
    """Maps normalized phone numbers and lowercased emails to contact names"""

    def __init__(self, contacts: Optional[Dict[str, str]] = None, region: str = 'US'):
        self.contacts = dict(contacts or {})
        self.region = region

    def __len__(self) -> int:
        return len(self.contacts)

    @classmethod
    def from_vcf(cls, vcf_file_path: str, region: str = 'US') -> "ContactBook":
        """
        Load contacts from a VCF file and normalize phone numbers and emails

        Args:
            vcf_file_path: Path to a vCard export
            region: Region code used when a number has no country prefix

        Raises:
            FileNotFoundError: If the file does not exist
        """
        vcf_file_path = os.path.expanduser(vcf_file_path)
        if not os.path.exists(vcf_file_path):
            raise FileNotFoundError(f"VCF file not found: {vcf_file_path}")

        with open(vcf_file_path, 'r', encoding='utf-8') as vcf_file:
            return cls.from_vcf_text(vcf_file.read(), region)

    @classmethod
    def from_vcf_text(cls, vcf_text: str, region: str = 'US') -> "ContactBook":
        contacts = {}

        for vcard in vobject.readComponents(vcf_text):
            first_name = ""
            last_name = ""

            if 'n' in vcard.contents:
                name_obj = vcard.contents['n'][0].value
                first_name = getattr(name_obj, 'given', "") or ""
                last_name = getattr(name_obj, 'family', "") or ""

            # Fallback to formatted name if structured name not available
            if not first_name and not last_name and 'fn' in vcard.contents:
                name_parts = vcard.contents['fn'][0].value.split(' ', 1)
                first_name = name_parts[0]
                last_name = name_parts[1] if len(name_parts) > 1 else ""

            full_name = f"{first_name} {last_name}".strip()
            if not full_name:
                continue

            for tel in vcard.contents.get('tel', []):
                normalized = normalize_phone_number(tel.value, region)
                if normalized:
                    contacts[normalized] = full_name

            for email in vcard.contents.get('email', []):
                email_addr = email.value.lower().strip()
                if email_addr:
                    contacts[email_addr] = full_name

        logger.info("Loaded %d contact identifiers from vCard data", len(contacts))
        return cls(contacts, region)

    def lookup(self, raw_handle: Optional[str]) -> Optional[str]:
        """Contact name for a handle identifier, or None"""
        if not raw_handle or not self.contacts:
            return None

        if '@' in raw_handle:
            return self.contacts.get(raw_handle.lower().strip())

        for region in (self.region,) + FALLBACK_REGIONS:
            normalized = normalize_phone_number(raw_handle, region)
            if normalized and normalized in self.contacts:
                return self.contacts[normalized]

        return self.contacts.get(raw_handle)
