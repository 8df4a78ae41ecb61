"""Pydantic schemas for nested eligibility criteria."""

from pydantic import BaseModel, Field


class OperatingYears(BaseModel):
    minimum: int | None = None
    maximum: int | None = None
    description: str | None = None


class OrganizationRequirements(BaseModel):
    organization_type: list[str] = Field(default_factory=list)
    operating_years: OperatingYears | None = None


class RdInvestmentRatio(BaseModel):
    minimum: float
    period: str | None = None
    calculation_method: str | None = None


class InvestmentThreshold(BaseModel):
    minimum_amount: int  # KRW
    description: str


class FinancialRequirements(BaseModel):
    rd_investment_ratio: RdInvestmentRatio | None = None
    investment_threshold: InvestmentThreshold | None = None


class CertificationRequirements(BaseModel):
    required: list[str] = Field(default_factory=list)
    documents: list[str] = Field(default_factory=list)


class ConsortiumComposition(BaseModel):
    lead_organization: list[str] | None = None
    participants: list[str] | None = None


class ConsortiumRequirements(BaseModel):
    required: bool = False
    composition: ConsortiumComposition | None = None
    type: list[str] = Field(default_factory=list)


class GovernmentRelationship(BaseModel):
    required_agreements: list[str] = Field(default_factory=list)
    preferred_status: list[str] = Field(default_factory=list)
    target_country: str | None = None
    exclusions: list[str] = Field(default_factory=list)


class IndustryRequirements(BaseModel):
    sectors: list[str] = Field(default_factory=list)


class EligibilityCriteria(BaseModel):
    """Requirement groups found inside the eligibility section."""

    organization_requirements: OrganizationRequirements | None = None
    financial_requirements: FinancialRequirements | None = None
    certification_requirements: CertificationRequirements | None = None
    consortium_requirements: ConsortiumRequirements | None = None
    government_relationship: GovernmentRelationship | None = None
    industry_requirements: IndustryRequirements | None = None

    # Flat flags kept for older consumers
    consortium_required: bool = False
    business_structures: list[str] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not any([
            self.organization_requirements,
            self.financial_requirements,
            self.certification_requirements,
            self.consortium_requirements,
            self.government_relationship,
            self.industry_requirements,
            self.business_structures,
        ])

    def to_json(self) -> dict:
        return self.model_dump(exclude_none=True)
