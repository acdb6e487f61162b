"""构建流水线模块

拆分说明:
- models.py: 执行报告
- steps.py: 7 个步骤实现
- orchestrator.py: 顺序编排与状态迁移
"""

from kbuilder.services.pipeline.models import PipelineReport
from kbuilder.services.pipeline.orchestrator import Orchestrator
from kbuilder.services.pipeline.steps import PipelineSteps

__all__ = ["PipelineReport", "Orchestrator", "PipelineSteps"]
