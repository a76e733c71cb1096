from sqlalchemy.orm import declarative_base

Base = declarative_base()

# --------------------------------------------------
# Partners & clienti referenziati
# --------------------------------------------------
from .partners import Partner  # noqa: F401
from .partner_clients import PartnerClient  # noqa: F401

# --------------------------------------------------
# Commissioni (earnings) + audit log transizioni
# --------------------------------------------------
from .partner_earnings import PartnerEarning  # noqa: F401
from .partner_earning_events import PartnerEarningEvent  # noqa: F401
