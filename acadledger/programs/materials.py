"""
Material ledger program.

Listings never carry the content pointer. FetchMaterialContent reloads
the material, re-resolves its class and re-runs the enrollment check at
the point of use.
"""

import logging
from typing import TYPE_CHECKING, Any, Dict, List

from acadledger.core.exceptions import AlreadyExistsError
from acadledger.core.models import ClassRecord, DocType, MaterialKind, MaterialRecord
from acadledger.programs.base import LedgerProgram, operation, require_text
from acadledger.store.query import Selector

if TYPE_CHECKING:
    from acadledger.runtime.context import OperationContext

logger = logging.getLogger(__name__)


class MaterialProgram(LedgerProgram):

    name = "material"

    @operation("UploadMaterial")
    def upload_material(
        self,
        ctx:             "OperationContext",
        material_id:     str,
        class_id:        str,
        module_id:       str,
        title:           str,
        kind:            str,
        content_pointer: str,
    ) -> Dict[str, Any]:
        self.require_institution(ctx, "upload materials")
        material_kind = MaterialKind.parse(kind)
        require_text(material_id, "materialId")
        require_text(content_pointer, "contentPointer")

        ctx.records.load(class_id, ClassRecord, "Class")
        if ctx.records.exists(material_id):
            raise AlreadyExistsError(
                f"Material {material_id} already exists", {"materialId": material_id}
            )

        record = MaterialRecord(
            id=              material_id,
            class_id=        class_id,
            module_id=       module_id,
            title=           title,
            kind=            material_kind,
            content_pointer= content_pointer,
            uploaded_by=     ctx.identity.caller_id,
            uploaded_at=     ctx.clock.stamp(),
        )
        ctx.records.put(record)
        ctx.emit("MaterialUploaded", {
            "materialId": material_id,
            "classId":    class_id,
            "moduleId":   module_id,
            "title":      title,
            "type":       material_kind.value,
            "uploadedBy": record.uploaded_by,
        })

        logger.info("Material %s uploaded to class %s", material_id, class_id)
        return record.metadata()

    @operation("ListMaterials")
    def list_materials(self, ctx: "OperationContext", class_id: str) -> List[Dict[str, Any]]:
        self.check_enrollment(ctx, class_id)
        materials = ctx.records.find(
            Selector({"docType": DocType.MATERIAL, "classId": class_id})
        )
        return [record.metadata() for record in materials]

    @operation("FetchMaterialContent")
    def fetch_material_content(self, ctx: "OperationContext", material_id: str) -> Dict[str, Any]:
        record = ctx.records.load(material_id, MaterialRecord, "Material")
        self.check_enrollment(ctx, record.class_id)

        logger.info("Material %s content fetched by %s", material_id, ctx.identity.describe())
        view = record.metadata()
        view["contentPointer"] = record.content_pointer
        return view

    @operation("GetMaterial")
    def get_material(self, ctx: "OperationContext", material_id: str) -> Dict[str, Any]:
        self.require_institution(ctx, "view material details")
        return ctx.records.load(material_id, MaterialRecord, "Material").to_dict()

    @operation("DeleteMaterial")
    def delete_material(self, ctx: "OperationContext", material_id: str) -> Dict[str, Any]:
        self.require_institution(ctx, "delete materials")
        record = ctx.records.load(material_id, MaterialRecord, "Material")

        ctx.records.delete(material_id)
        ctx.emit("MaterialDeleted", {
            "materialId": material_id,
            "classId":    record.class_id,
            "deletedBy":  ctx.identity.caller_id,
        })

        logger.info("Material %s deleted by %s", material_id, ctx.identity.describe())
        return {"materialId": material_id, "message": f"Material {material_id} successfully deleted"}
