"""Sample billing exports shared by tests.

``SAMPLE_CSV`` covers the week 2025-08-25 (Mon) .. 2025-08-31 (Sun) plus one
row from the following Monday, one tips summary row and one undated row.

Expected figures for that week:

- revenue: base_infusion 325.00, infusion_addon 75.00, standalone_injection
  25.00, weight_loss_medication 300.00, membership_or_admin 199.00,
  other 40.00; total 964.00
- 4 customers (3 members, 1 non-member), 7 transactions
- one family membership signup, marked new
- rejected: 2 (tips, invalid date); out of range: 1; unmapped: 1
"""

from __future__ import annotations

import textwrap
from pathlib import Path

SAMPLE_CSV = textwrap.dedent(
    """\
    Date,Patient,Charge Desc,Charge Type,Calculated Payment (Line)
    8/25/25,Jane Doe,Hydration Infusion,Service,$150.00
    8/25/25,Jane Doe,NAD+ Add-on (Member),Service,$75.00
    8/26/25,John Smith,B12 Injection (Member),Service,$25.00
    8/27/25,Mary Major,Semaglutide Injection (Member),Service,$300.00
    8/28/25,Mary Major,OFFICE VISIT Membership - Family (NEW),Service,$199.00
    8/30/25,John Smith,Energy Infusion,Service,$175.00
    8/31/25,Ann Lee,Mystery Service,Service,$40.00
    8/31/25,,Tips,TOTAL_TIPS,$20.00
    n/a,Bob Stone,Hydration Infusion,Service,$150.00
    9/1/25,Ann Lee,Hydration Infusion,Service,$150.00
    """
)


def write_sample_csv(directory: Path, name: str = "export.csv") -> Path:
    path = directory / name
    path.write_text(SAMPLE_CSV, encoding="utf-8")
    return path
