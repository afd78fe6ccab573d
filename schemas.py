"""
Schemas for the Portfolio Document

The whole site lives in ONE MongoDB record (collection `portfolio`, key
`data`). Field names are persisted in camelCase; the models accept either
spelling and dump with aliases so the stored shape never changes.

Sections (shallow-merged on update): hero, about, contact, settings
Collections (addressed by id): projects, resumes
"""
import copy
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

SECTIONS = ("hero", "about", "contact", "settings")
CONTACT_KEYS = ("personalEmail", "orgEmail", "phone", "linkedin", "github", "instagram", "twitter")


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    def dump(self, **kwargs) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, **kwargs)


# Document
class Hero(CamelModel):
    name: str = ""
    title: str = ""  # up to three parts separated by "|"
    description: str = ""
    visible: bool = True

class SkillCategory(CamelModel):
    category: str
    skills: List[str] = Field(default_factory=list)

class About(CamelModel):
    content: str = ""
    skill_categories: List[SkillCategory] = Field(default_factory=list)
    visible: bool = True

class AdditionalFile(CamelModel):
    name: str
    url: str  # data URI or external link

class Project(CamelModel):
    id: int
    title: str
    description: Optional[str] = None
    cover_photo: Optional[str] = None  # data URI or external URL
    github_link: Optional[str] = None
    live_link: Optional[str] = None
    additional_files: List[AdditionalFile] = Field(default_factory=list)
    visible: bool = True

class Resume(CamelModel):
    id: int
    title: str
    drive_file_id: str  # opaque Google Drive id
    visible: bool = True

class ContactEntry(CamelModel):
    value: str = ""
    visible: bool = True

class Contact(CamelModel):
    personal_email: ContactEntry = Field(default_factory=ContactEntry)
    org_email: ContactEntry = Field(default_factory=ContactEntry)
    phone: ContactEntry = Field(default_factory=ContactEntry)
    linkedin: ContactEntry = Field(default_factory=ContactEntry)
    github: ContactEntry = Field(default_factory=ContactEntry)
    instagram: ContactEntry = Field(default_factory=ContactEntry)
    twitter: ContactEntry = Field(default_factory=ContactEntry)

class Settings(CamelModel):
    show_resume: bool = True

class PortfolioDocument(CamelModel):
    hero: Hero = Field(default_factory=Hero)
    about: About = Field(default_factory=About)
    projects: List[Project] = Field(default_factory=list)
    resumes: List[Resume] = Field(default_factory=list)
    contact: Contact = Field(default_factory=Contact)
    settings: Settings = Field(default_factory=Settings)

SECTION_MODELS = {"hero": Hero, "about": About, "contact": Contact, "settings": Settings}


# ============
# Request DTOs
# ============
class LoginRequest(BaseModel):
    email: str
    password: str

class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"

class ProjectCreate(CamelModel):
    title: str = Field(..., min_length=1)
    description: Optional[str] = ""
    cover_photo: Optional[str] = ""
    github_link: Optional[str] = ""
    live_link: Optional[str] = ""
    additional_files: List[AdditionalFile] = Field(default_factory=list)

class ProjectUpdate(CamelModel):
    title: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    cover_photo: Optional[str] = None
    github_link: Optional[str] = None
    live_link: Optional[str] = None
    additional_files: Optional[List[AdditionalFile]] = None
    visible: Optional[bool] = None

class ResumeCreate(CamelModel):
    title: str = Field(..., min_length=1)
    drive_file_id: str = Field(..., min_length=1)

class ResumeUpdate(CamelModel):
    title: Optional[str] = Field(None, min_length=1)
    drive_file_id: Optional[str] = Field(None, min_length=1)
    visible: Optional[bool] = None

class SkillCategoryCreate(BaseModel):
    category: str = Field(..., min_length=1)
    skills: Union[List[str], str]  # list of names or "a, b, c"


# ================
# Default document
# ================
DEFAULT_DOCUMENT: Dict[str, Any] = {
    "hero": {
        "name": "Your Name",
        "title": "Data Analyst | Business Analyst | Data Scientist",
        "description": "Recent graduate passionate about turning data into actionable insights. "
                       "Experienced in data analysis, visualization, and machine learning.",
        "visible": True,
    },
    "about": {
        "content": "I'm a recent graduate with a strong foundation in data analytics and business intelligence. "
                   "My experience spans across data engineering, statistical analysis, and machine learning. "
                   "I'm passionate about solving complex problems with data-driven solutions.",
        "skillCategories": [
            {"category": "Languages", "skills": ["Python", "R", "SQL", "HTML", "JavaScript", "C"]},
            {"category": "Database", "skills": ["MongoDB", "Firebase", "MySQL", "Oracle", "PostgreSQL", "SQLite"]},
            {"category": "Tools", "skills": [
                "Tableau", "MySQL Workbench", "AWS Glue", "Microsoft Excel", "Power BI",
                "Salesforce", "JIRA", "Power Apps", "Power Automate", "SharePoint",
            ]},
            {"category": "Libraries", "skills": [
                "pandas", "seaborn", "matplotlib", "scikit-learn", "scipy", "TensorFlow",
                "Keras", "PyTorch", "plotly", "dash", "geopandas", "ArcGIS",
            ]},
            {"category": "Frameworks & Methodologies", "skills": [
                "Agile", "Scrum", "Sprint Planning", "Stand-ups", "Retrospectives",
            ]},
            {"category": "Big Data & Cloud", "skills": ["AWS Glue", "Spark", "Hadoop"]},
        ],
        "visible": True,
    },
    "projects": [],
    "resumes": [],
    "contact": {key: {"value": "", "visible": True} for key in CONTACT_KEYS},
    "settings": {
        "showResume": True,
    },
}


def default_document() -> Dict[str, Any]:
    """Fresh copy of the first-run document; callers may mutate it freely."""
    return copy.deepcopy(DEFAULT_DOCUMENT)
