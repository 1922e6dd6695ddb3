# visas/
# ├── models/
# │   ├── __init__.py
# │   │
# │   ├── # 1. The Catalog (Admin Side)
# │   ├── visa_type.py                 <-- "Tourist Visa", "Transit Visa"
# │   │
# │   ├── # 2. The Application (Client Side)
# │   ├── visa_application.py          <-- The main record, created lazily
# │   └── visa_application_document.py <-- Metadata of the uploaded files

from .visa_type import VisaType
from .visa_application import VisaApplication
from .visa_application_document import VisaApplicationDocument
