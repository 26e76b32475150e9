"""Document kinds a contribution or rendered artifact can have."""
import enum


class FileType(str, enum.Enum):
    # Model-produced documents
    business_case = "business_case"
    feature_spec = "feature_spec"
    technical_approach = "technical_approach"
    success_metrics = "success_metrics"
    business_case_critique = "business_case_critique"
    technical_feasibility_assessment = "technical_feasibility_assessment"
    risk_register = "risk_register"
    non_functional_requirements = "non_functional_requirements"
    dependency_map = "dependency_map"
    comparison_vector = "comparison_vector"
    synthesis_pairwise_business_case = "synthesis_pairwise_business_case"
    synthesis_pairwise_feature_spec = "synthesis_pairwise_feature_spec"
    synthesis_pairwise_technical_approach = "synthesis_pairwise_technical_approach"
    synthesis_pairwise_success_metrics = "synthesis_pairwise_success_metrics"
    synthesis_document_business_case = "synthesis_document_business_case"
    synthesis_document_feature_spec = "synthesis_document_feature_spec"
    synthesis_document_technical_approach = "synthesis_document_technical_approach"
    synthesis_document_success_metrics = "synthesis_document_success_metrics"
    product_requirements = "product_requirements"
    system_architecture = "system_architecture"
    tech_stack = "tech_stack"
    technical_requirements = "technical_requirements"
    master_plan = "master_plan"
    milestone_schema = "milestone_schema"
    updated_master_plan = "updated_master_plan"
    actionable_checklist = "actionable_checklist"
    advisor_recommendations = "advisor_recommendations"

    # Planning artifacts
    header_context = "header_context"
    header_context_pairwise = "header_context_pairwise"
    synthesis_header_context = "synthesis_header_context"

    # Project resources
    rendered_document = "rendered_document"
    seed_prompt = "seed_prompt"
    user_feedback = "user_feedback"
    general_resource = "general_resource"
    rag_context_summary = "rag_context_summary"


# Outputs that feed later planning rather than becoming a user-facing document.
NON_DOCUMENT_OUTPUT_TYPES = frozenset({
    FileType.header_context.value,
    FileType.header_context_pairwise.value,
    FileType.synthesis_header_context.value,
})


def is_file_type(value) -> bool:
    return isinstance(value, str) and value in FileType._value2member_map_


def is_document_centric(output_type: str | None) -> bool:
    return is_file_type(output_type) and output_type not in NON_DOCUMENT_OUTPUT_TYPES
