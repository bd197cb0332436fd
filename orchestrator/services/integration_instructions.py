"""
Integration Instruction Generator — role-specific setup scripts.

Pure lookup over (integration type × stakeholder role). Each type has one
header (title, description, requirements) and one script per role; roles
without a dedicated script get the owner script, types without a table get
a generic one-step script.

Usage:
    from orchestrator.services.integration_instructions import IntegrationInstructionGenerator
    guide = IntegrationInstructionGenerator.generate_instructions("SIS", "it_contact")
"""

from __future__ import annotations

from copy import deepcopy

# step = (title, description, required_info, validation_criteria)

_HEADERS = {
    "SIS": {
        "title": "Student Information System (SIS) Integration Setup",
        "description": ("Configure secure connection between your SIS and our platform for "
                        "automated student data synchronization."),
        "requirements": {
            "technical": ["SIS system with API access capabilities",
                          "Network connectivity to external APIs",
                          "SSL/TLS encryption support"],
            "access": ["SIS administrator privileges",
                       "API key generation permissions",
                       "Student data access rights"],
            "information": ["SIS API endpoint URL",
                            "Authentication credentials",
                            "Student data schema documentation"],
        },
    },
    "CRM": {
        "title": "Customer Relationship Management (CRM) Integration Setup",
        "description": "Connect your CRM system to synchronize customer data and track engagement metrics.",
        "requirements": {
            "technical": ["CRM system with API support (Salesforce, HubSpot, etc.)",
                          "OAuth 2.0 authentication capability",
                          "Custom field configuration access"],
            "access": ["CRM administrator privileges",
                       "API access permissions",
                       "Custom field creation rights"],
            "information": ["CRM instance URL", "OAuth credentials", "Field mapping requirements"],
        },
    },
    "SFTP": {
        "title": "Secure File Transfer Protocol (SFTP) Integration Setup",
        "description": "Configure secure file transfer capabilities for automated data exchange.",
        "requirements": {
            "technical": ["SFTP server with external access",
                          "SSH key pair generation capability",
                          "File system permissions management"],
            "access": ["SFTP server administrator access",
                       "User account creation privileges",
                       "Directory permission management"],
            "information": ["SFTP server hostname/IP",
                            "Port configuration",
                            "Authentication method preference"],
        },
    },
    "API": {
        "title": "Custom API Integration Setup",
        "description": "Configure custom API integration for specialized data exchange requirements.",
        "requirements": {
            "technical": ["RESTful API with JSON support",
                          "Authentication mechanism (API key, OAuth, etc.)",
                          "Rate limiting and error handling"],
            "access": ["API development/configuration access",
                       "Authentication credential management",
                       "API documentation access"],
            "information": ["API endpoint URLs",
                            "Authentication details",
                            "Data schema documentation"],
        },
    },
}

_API_BUILD_SCRIPT = (6, [
    ("API Endpoint Configuration", "Configure API endpoints and authentication.",
     ["Endpoint URLs", "Authentication tokens", "Request/response formats"],
     ["Endpoints accessible", "Authentication working"]),
    ("Data Schema Mapping", "Map data schemas between systems.",
     ["Schema documentation", "Field mappings", "Data transformations"],
     ["Schema mapped", "Data transformation tested"]),
    ("Integration Testing", "Comprehensive testing of API integration.",
     ["Test cases", "Error scenarios", "Performance benchmarks"],
     ["All tests passed", "Performance acceptable"]),
])

# type → role → (estimated hours, steps)
_SCRIPTS = {
    "SIS": {
        "it_contact": (6, [
            ("Verify SIS API Access",
             "Confirm your SIS system supports API access and identify the correct endpoints.",
             ["SIS version", "API documentation", "Current integrations"],
             ["API endpoints accessible", "Documentation available"]),
            ("Generate API Credentials",
             "Create dedicated API credentials for the integration with appropriate permissions.",
             ["API key", "Secret key", "Permission scope"],
             ["Credentials generated", "Read access to student data confirmed"]),
            ("Configure Network Access",
             "Ensure network connectivity and firewall rules allow communication with our platform.",
             ["Firewall rules", "IP whitelist", "Port configurations"],
             ["Network connectivity tested", "SSL handshake successful"]),
            ("Test Data Access",
             "Verify the integration can access required student data fields.",
             ["Sample data export", "Field mappings", "Data format validation"],
             ["Sample data retrieved", "Required fields present", "Data format valid"]),
        ]),
        "technical_lead": (3, [
            ("Review Integration Architecture",
             "Analyze the technical requirements and integration architecture.",
             ["System architecture diagram", "Data flow requirements", "Security protocols"],
             ["Architecture reviewed", "Requirements understood"]),
            ("Coordinate with IT Team",
             "Work with IT contacts to ensure proper configuration and access.",
             ["IT contact information", "Access requirements", "Timeline coordination"],
             ["IT team briefed", "Access permissions confirmed"]),
            ("Validate Integration Testing",
             "Oversee integration testing and validate data accuracy.",
             ["Test results", "Data validation reports", "Performance metrics"],
             ["Tests completed successfully", "Data accuracy confirmed"]),
        ]),
        "project_manager": (2, [
            ("Coordinate Stakeholders",
             "Ensure all necessary stakeholders are identified and engaged.",
             ["Stakeholder list", "Contact information", "Responsibility matrix"],
             ["All stakeholders identified", "Responsibilities assigned"]),
            ("Track Integration Progress",
             "Monitor setup progress and address any blockers or delays.",
             ["Progress updates", "Blocker reports", "Timeline status"],
             ["Progress tracked", "Issues escalated appropriately"]),
            ("Validate Completion",
             "Confirm integration is complete and ready for production use.",
             ["Completion checklist", "Test results", "Go-live approval"],
             ["Integration tested", "Stakeholder approval received"]),
        ]),
        "owner": (1, [
            ("Provide SIS Information",
             "Share basic information about your Student Information System.",
             ["SIS vendor/name", "Version information", "IT contact details"],
             ["SIS information provided", "IT contact confirmed"]),
            ("Approve Data Access",
             "Review and approve the data that will be accessed through the integration.",
             ["Data access agreement", "Privacy policy review", "Approval signature"],
             ["Data access approved", "Privacy requirements understood"]),
        ]),
    },
    "CRM": {
        "it_contact": (4, [
            ("Configure OAuth Application",
             "Set up OAuth 2.0 application in your CRM for secure authentication.",
             ["Client ID", "Client Secret", "Redirect URLs"],
             ["OAuth app created", "Credentials generated"]),
            ("Map Data Fields",
             "Configure field mappings between CRM and our platform.",
             ["Field mapping document", "Custom field definitions", "Data types"],
             ["Fields mapped correctly", "Data types compatible"]),
            ("Test Data Synchronization",
             "Verify bidirectional data sync is working correctly.",
             ["Test records", "Sync logs", "Error reports"],
             ["Data sync successful", "No sync errors"]),
        ]),
        "technical_lead": (2, [
            ("Review CRM Architecture",
             "Understand CRM data model and integration requirements.",
             ["CRM schema", "Integration patterns", "Performance requirements"],
             ["Architecture understood", "Requirements documented"]),
            ("Validate Integration Design",
             "Ensure integration design meets technical and business requirements.",
             ["Integration design", "Performance benchmarks", "Security review"],
             ["Design approved", "Performance acceptable"]),
        ]),
        "project_manager": (1.5, [
            ("Plan CRM Integration",
             "Coordinate CRM integration timeline and resources.",
             ["Project timeline", "Resource allocation", "Milestone definitions"],
             ["Plan approved", "Resources assigned"]),
            ("Monitor Integration Progress",
             "Track progress and manage any integration issues.",
             ["Progress reports", "Issue tracking", "Status updates"],
             ["Progress on track", "Issues resolved"]),
        ]),
        "owner": (0.5, [
            ("Provide CRM Details",
             "Share information about your CRM system and requirements.",
             ["CRM platform", "Admin contact", "Integration goals"],
             ["CRM details provided", "Goals defined"]),
        ]),
    },
    "SFTP": {
        "it_contact": (3, [
            ("Configure SFTP Server", "Set up SFTP server access and user accounts.",
             ["Server hostname", "Port number", "User credentials"],
             ["Server accessible", "User account created"]),
            ("Set Up Directory Structure",
             "Create required directories with appropriate permissions.",
             ["Directory paths", "Permission settings", "File naming conventions"],
             ["Directories created", "Permissions set correctly"]),
            ("Test File Transfer", "Verify file upload and download functionality.",
             ["Test files", "Transfer logs", "Error handling"],
             ["File transfer successful", "No permission errors"]),
        ]),
        "technical_lead": (1, [
            ("Review SFTP Security", "Ensure SFTP configuration meets security requirements.",
             ["Security policies", "Encryption settings", "Access controls"],
             ["Security approved", "Compliance verified"]),
        ]),
        "project_manager": (1, [
            ("Coordinate SFTP Setup",
             "Manage SFTP integration timeline and stakeholder coordination.",
             ["Project timeline", "Stakeholder assignments", "Progress tracking"],
             ["Timeline established", "Stakeholders coordinated"]),
        ]),
        "owner": (0.5, [
            ("Provide SFTP Requirements", "Share SFTP server details and access requirements.",
             ["Server information", "Access requirements", "File formats"],
             ["Requirements documented", "Access approved"]),
        ]),
    },
    "API": {
        "it_contact": _API_BUILD_SCRIPT,
        "technical_lead": _API_BUILD_SCRIPT,
        "project_manager": (2, [
            ("Plan API Integration",
             "Coordinate API integration project timeline and resources.",
             ["Project scope", "Resource allocation", "Timeline milestones"],
             ["Project plan approved", "Resources assigned"]),
            ("Monitor Integration Progress",
             "Track API integration development and testing progress.",
             ["Progress reports", "Issue tracking", "Quality metrics"],
             ["Progress on track", "Issues resolved"]),
        ]),
        "owner": (1, [
            ("Define API Requirements",
             "Specify API integration requirements and expectations.",
             ["Integration requirements", "Data needs", "Performance expectations"],
             ["Requirements documented", "Expectations set"]),
        ]),
    },
}

_GENERIC_SCRIPT = (2, [
    ("Define Integration Requirements",
     "Work with technical team to define specific integration requirements.",
     ["Integration specifications", "Technical requirements", "Timeline"],
     ["Requirements documented", "Technical approach approved"]),
])

_GENERIC_REQUIREMENTS = {
    "technical": ["System compatibility", "API or data exchange capability"],
    "access": ["System administrator access", "Configuration permissions"],
    "information": ["System documentation", "Integration specifications"],
}

COORDINATION_NOTES = (
    "Coordinate with all stakeholders before beginning integration setup",
    "Ensure IT contacts have necessary system access before starting",
    "Test integrations in a non-production environment first",
    "Document all configuration changes for future reference",
    "Plan for integration testing and validation time",
    "Have rollback procedures ready in case of issues",
)


def _steps(raw_steps):
    return [
        {
            "step_number": number,
            "title": title,
            "description": description,
            "required_info": list(required_info),
            "validation_criteria": list(criteria),
        }
        for number, (title, description, required_info, criteria) in enumerate(raw_steps, start=1)
    ]


class IntegrationInstructionGenerator:
    """Stateless generator for stakeholder setup instructions."""

    @staticmethod
    def generate_instructions(integration_type: str, stakeholder_role: str) -> dict:
        """Instructions for one stakeholder role on one integration type."""
        header = _HEADERS.get(integration_type)
        if header is None:
            hours, raw_steps = _GENERIC_SCRIPT
            return {
                "integration_type": integration_type,
                "stakeholder_role": stakeholder_role,
                "title": f"{integration_type} Integration Setup",
                "description": (f"Configure {integration_type} integration according to your "
                                "specific requirements."),
                "steps": _steps(raw_steps),
                "requirements": deepcopy(_GENERIC_REQUIREMENTS),
                "estimated_time_hours": hours,
            }

        scripts = _SCRIPTS[integration_type]
        hours, raw_steps = scripts.get(stakeholder_role, scripts["owner"])
        return {
            "integration_type": integration_type,
            "stakeholder_role": stakeholder_role,
            "title": header["title"],
            "description": header["description"],
            "steps": _steps(raw_steps),
            "requirements": deepcopy(header["requirements"]),
            "estimated_time_hours": hours,
        }

    @staticmethod
    def generate_onboarding_integration_guide(integrations, stakeholders) -> dict:
        """Per-integration, per-stakeholder instructions for a whole onboarding.

        Stakeholders work in parallel, so each integration contributes the
        longest single script to ``total_estimated_hours``.
        """
        integrations = list(integrations or [])
        stakeholders = list(stakeholders or [])

        guides = []
        total_hours = 0
        for integration in integrations:
            instructions = [
                {
                    "stakeholder": stakeholder.to_dict(),
                    "instructions": IntegrationInstructionGenerator.generate_instructions(
                        integration.type, stakeholder.role),
                }
                for stakeholder in stakeholders
            ]
            total_hours += max((i["instructions"]["estimated_time_hours"] for i in instructions), default=0)
            guides.append({
                "integration": integration.to_dict(include_configuration=False),
                "stakeholder_instructions": instructions,
            })

        return {
            "overview": (f"Integration setup guide for {len(integrations)} integration(s) "
                         f"involving {len(stakeholders)} stakeholder(s)"),
            "total_estimated_hours": total_hours,
            "integration_guides": guides,
            "coordination_notes": list(COORDINATION_NOTES),
        }
