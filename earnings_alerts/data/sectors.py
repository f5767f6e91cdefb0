"""
Industry to sector lookup.
"""

from typing import Optional

OTHER_SECTOR = "Other"

# Finnhub industry names mapped onto broad sectors
SECTOR_MAPPING: dict[str, str] = {
    # Technology
    "Technology": "Technology",
    "Software": "Technology",
    "Hardware": "Technology",
    "Semiconductors": "Technology",
    "Electronic Components": "Technology",
    "Computer Hardware": "Technology",
    "Information Technology Services": "Technology",
    # Healthcare
    "Healthcare": "Healthcare",
    "Pharmaceuticals": "Healthcare",
    "Biotechnology": "Healthcare",
    "Medical Devices": "Healthcare",
    "Healthcare Plans": "Healthcare",
    "Medical Care Facilities": "Healthcare",
    "Drug Manufacturers": "Healthcare",
    "Diagnostics & Research": "Healthcare",
    "Medical Instruments & Supplies": "Healthcare",
    # Financials
    "Financial Services": "Financials",
    "Banking": "Financials",
    "Banks": "Financials",
    "Insurance": "Financials",
    "Asset Management": "Financials",
    "Capital Markets": "Financials",
    "Credit Services": "Financials",
    "Financial Data & Stock Exchanges": "Financials",
    "Insurance - Life": "Financials",
    "Insurance - Property & Casualty": "Financials",
    "Banks - Regional": "Financials",
    "Banks - Diversified": "Financials",
    # Consumer
    "Consumer Cyclical": "Consumer",
    "Consumer Defensive": "Consumer",
    "Consumer products": "Consumer",
    "Retail": "Consumer",
    "Restaurants": "Consumer",
    "Apparel": "Consumer",
    "Auto Manufacturers": "Consumer",
    "Automobiles": "Consumer",
    "Auto Parts": "Consumer",
    "Leisure": "Consumer",
    "Packaging & Containers": "Consumer",
    "Personal Services": "Consumer",
    "Specialty Retail": "Consumer",
    "Beverages": "Consumer",
    "Food Products": "Consumer",
    "Household Products": "Consumer",
    "Tobacco": "Consumer",
    # Industrials
    "Industrials": "Industrials",
    "Industrial": "Industrials",
    "Manufacturing": "Industrials",
    "Aerospace & Defense": "Industrials",
    "Airlines": "Industrials",
    "Building Materials": "Industrials",
    "Construction": "Industrials",
    "Farm & Heavy Construction Machinery": "Industrials",
    "Industrial Distribution": "Industrials",
    "Waste Management": "Industrials",
    "Trucking": "Industrials",
    "Railroads": "Industrials",
    "Marine Shipping": "Industrials",
    # Energy
    "Energy": "Energy",
    "Oil & Gas": "Energy",
    "Oil & Gas E&P": "Energy",
    "Oil & Gas Integrated": "Energy",
    "Oil & Gas Midstream": "Energy",
    "Oil & Gas Refining & Marketing": "Energy",
    "Oil & Gas Equipment & Services": "Energy",
    # Utilities
    "Utilities": "Utilities",
    "Utilities - Regulated Electric": "Utilities",
    "Utilities - Regulated Gas": "Utilities",
    "Utilities - Diversified": "Utilities",
    "Utilities - Renewable": "Utilities",
    "Utilities - Independent Power Producers": "Utilities",
    # Real Estate
    "Real Estate": "Real Estate",
    "REIT": "Real Estate",
    "REIT - Retail": "Real Estate",
    "REIT - Residential": "Real Estate",
    "REIT - Office": "Real Estate",
    "REIT - Healthcare Facilities": "Real Estate",
    "REIT - Industrial": "Real Estate",
    "REIT - Diversified": "Real Estate",
    "Real Estate Services": "Real Estate",
    "Real Estate Development": "Real Estate",
    # Communication
    "Communication Services": "Communication",
    "Communication": "Communication",
    "Media": "Communication",
    "Telecommunication": "Communication",
    "Telecom Services": "Communication",
    "Entertainment": "Communication",
    "Advertising Agencies": "Communication",
    "Broadcasting": "Communication",
    "Internet Content & Information": "Communication",
    "Electronic Gaming & Multimedia": "Communication",
    # Materials
    "Basic Materials": "Materials",
    "Materials": "Materials",
    "Chemicals": "Materials",
    "Metals & Mining": "Materials",
    "Steel": "Materials",
    "Aluminum": "Materials",
    "Copper": "Materials",
    "Gold": "Materials",
    "Silver": "Materials",
    "Lumber & Wood Production": "Materials",
    "Paper & Paper Products": "Materials",
    "Specialty Chemicals": "Materials",
}


def map_industry_to_sector(industry: Optional[str]) -> Optional[str]:
    """
    Map a provider industry name to a broad sector.

    Returns None when industry is unset, "Other" when it is unrecognized.
    """
    if not industry:
        return None
    return SECTOR_MAPPING.get(industry, OTHER_SECTOR)
