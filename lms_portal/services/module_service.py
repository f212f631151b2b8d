# lms_portal/services/module_service.py
from typing import List
import logging

from ..schemas.module_schemas import Module, ModuleCreate, ModuleUpdate, Student
from .csv_processor import CSVProcessor
from .lms_client import LMSClient
from .session_service import SessionContext

logger = logging.getLogger(__name__)


class ModuleService:
    def __init__(self, client: LMSClient, context: SessionContext):
        self.client = client
        self.context = context

    @property
    def token(self) -> str:
        return self.context.token

    async def list_modules(self) -> List[Module]:
        return [Module.model_validate(m) for m in await self.client.list_modules(self.token)]

    async def my_modules(self) -> List[Module]:
        """Modules taught by the lecturer or taken by the student in the session"""
        if self.context.is_lecturer:
            modules = await self.client.lecturer_modules(self.token)
        else:
            modules = await self.client.student_modules(self.token)
        return [Module.model_validate(m) for m in modules]

    async def get_module(self, module_id: str) -> Module:
        # Weights are validated here, before any grade is computed from them
        return Module.model_validate(await self.client.get_module(self.token, module_id))

    async def create_module(self, module_data: ModuleCreate) -> Module:
        payload = module_data.model_dump(mode="json", by_alias=True, exclude_none=True)
        created = Module.model_validate(await self.client.create_module(self.token, payload))
        logger.info(f"Module {created.code} created by {self.context.user.email}")
        return created

    async def update_module(self, module_id: str, module_data: ModuleUpdate) -> Module:
        payload = module_data.model_dump(mode="json", by_alias=True, exclude_none=True)
        updated = Module.model_validate(await self.client.update_module(self.token, module_id, payload))
        logger.info(f"Module {module_id} updated: {sorted(payload)}")
        return updated

    async def delete_module(self, module_id: str):
        await self.client.delete_module(self.token, module_id)
        logger.info(f"Module {module_id} deleted by {self.context.user.email}")

    async def enrolled_students(self, module_id: str) -> List[Student]:
        return [Student.model_validate(s) for s in await self.client.module_students(self.token, module_id)]

    async def available_students(self) -> List[Student]:
        return [Student.model_validate(s) for s in await self.client.available_students(self.token)]

    async def enroll_students(self, module_id: str, student_ids: List[str]):
        result = await self.client.add_students(self.token, module_id, student_ids)
        logger.info(f"Enrolled {len(student_ids)} students in module {module_id}")
        return result

    async def remove_student(self, module_id: str, student_id: str):
        return await self.client.remove_student(self.token, module_id, student_id)

    async def upload_students(self, module_id: str, filename: str, content: bytes):
        """Check the enrolment CSV locally, then hand it to the backend"""
        row_count = CSVProcessor.validate_enrollment_csv(content)
        result = await self.client.upload_students(self.token, module_id, filename, content)
        logger.info(f"Uploaded {row_count} enrolment rows for module {module_id}")
        return result
