from cms_core.forms.records import FORMS, AboutForm, EventForm, LabForm, ProgramForm, RecordForm

__all__ = ["FORMS", "AboutForm", "EventForm", "LabForm", "ProgramForm", "RecordForm"]
